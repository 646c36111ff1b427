"""Execution engines."""

from __future__ import annotations

from pathlib import Path

from .base import ExecutionEngine
from .docker import DockerEngine
from .local import LocalEngine
from .slurm import SlurmEngine


def make_engine(cfg, root: Path) -> ExecutionEngine:
    """Return the engine selected by ``cfg.engine``.

    Container-based engines bind-mount *root* so derivatives written by one
    stage are visible to the next.
    """
    if cfg.engine == "docker":
        return DockerEngine(cfg.images, Path(root))
    if cfg.engine == "slurm":
        return SlurmEngine()
    return LocalEngine()


__all__ = ["ExecutionEngine", "LocalEngine", "DockerEngine", "SlurmEngine", "make_engine"]
