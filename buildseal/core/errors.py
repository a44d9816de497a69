from __future__ import annotations


class BuildSealError(Exception):
    """Base class for fatal pipeline errors."""


class MissingTemplateError(BuildSealError):
    def __init__(self, path: object) -> None:
        super().__init__(f"source template not found: {path}")
        self.path = path


class ArtifactNotBuiltError(BuildSealError):
    def __init__(self, path: object) -> None:
        super().__init__(f"artifact has not been built: {path}")
        self.path = path


class ManifestParseError(BuildSealError):
    pass


class MissingSectionError(BuildSealError):
    def __init__(self, section_path: str) -> None:
        super().__init__(f"manifest section not found: {section_path}")
        self.section_path = section_path


class InvalidChainError(BuildSealError):
    pass


class GenerationError(BuildSealError):
    """A manifest generation could not be composed; later generations were not produced."""

    def __init__(self, generation: str, cause: BaseException) -> None:
        super().__init__(f"{generation} manifest generation failed: {cause}")
        self.generation = generation
        self.cause = cause
