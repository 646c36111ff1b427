"""Exceptions raised by the preprocessing pipelines and statistics helpers."""

from __future__ import annotations

from pathlib import Path


class HarmoprepError(RuntimeError):
    """Base class for unrecoverable pipeline errors."""

    pass


class UnknownScannerType(HarmoprepError):
    """Raised when no acquisition profile exists for a scanner code."""

    def __init__(self, code: str, modality: str) -> None:
        self.code = code
        self.modality = modality
        super().__init__(f"no {modality} profile for scanner code {code!r}")


class UnrecognizedScannerCode(UnknownScannerType):
    """Raised by the router when a session suffix is outside the modality set."""

    def __init__(self, code: str, modality: str, recognised: frozenset[str]) -> None:
        self.recognised = recognised
        super().__init__(code, modality)
        self.args = (
            f"session code {code!r} is not recognised for {modality} "
            f"(expected one of {', '.join(sorted(recognised))})",
        )


class MissingInputArtifact(HarmoprepError):
    """Raised when a stage input is absent or empty before the stage starts."""

    def __init__(self, stage_id: str, artifact: Path) -> None:
        self.stage_id = stage_id
        self.artifact = Path(artifact)
        super().__init__(f"[{stage_id}] missing input artifact: {artifact}")


class StageFailed(HarmoprepError):
    """Raised when a stage ran but did not satisfy its success predicate."""

    def __init__(self, stage_id: str, reason: str) -> None:
        self.stage_id = stage_id
        self.reason = reason
        super().__init__(f"[{stage_id}] stage failed: {reason}")


class StorageUnavailable(HarmoprepError):
    """Raised when the derivatives namespace cannot be created or written."""

    pass


class GridMismatch(HarmoprepError, ValueError):
    """Raised when a mask and a series/map are not defined on the same grid."""

    pass
