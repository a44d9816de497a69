"""buildseal: build manifest composition, verification and certification.

The low-level core lives in buildseal.core and buildseal.manifest; the
composer, verification chain and certificate emitter live in chain.*.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version


def __getattr__(name: str):
    if name == "__version__":
        try:
            return version("buildseal")
        except PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)
