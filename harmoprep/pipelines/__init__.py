"""Per-session preprocessing pipelines and the shared stage runner."""

from .artifacts import ArtifactStore
from .batch import BatchOutcome, run_batch
from .engine import Pipeline, PipelineResult, Stage
from .router import build_pipeline, route

__all__ = [
    "ArtifactStore",
    "BatchOutcome",
    "Pipeline",
    "PipelineResult",
    "Stage",
    "build_pipeline",
    "route",
    "run_batch",
]
