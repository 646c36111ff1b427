"""
Linear, fail-fast stage runner shared by every preprocessing pipeline.

A :class:`Pipeline` is an ordered list of :class:`Stage` objects built once
per session. Running it walks the list strictly in order:

1. every declared input must already exist (non-empty file or directory),
   otherwise :class:`~harmoprep.utils.errors.MissingInputArtifact` is raised
   *before* the stage's operation is invoked; output folders a tool will not
   overwrite are then removed;
2. the operation runs: an external :class:`~harmoprep.tools.base.Tool`
   through the execution engine, or an internal callable;
3. a non-zero exit status, a timeout or a failing success predicate raises
   :class:`~harmoprep.utils.errors.StageFailed`.

There is no retry; reruns are idempotent because output paths are fixed.
"""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from harmoprep.engines.base import ExecutionEngine
from harmoprep.models import PipelineVariant, Session
from harmoprep.tools.base import Tool
from harmoprep.utils.errors import HarmoprepError, MissingInputArtifact, StageFailed

from .artifacts import ArtifactStore

log = structlog.get_logger()


@dataclass(frozen=True)
class Stage:
    """One step of a pipeline.

    Attributes:
        id: Short identifier, unique within the pipeline.
        inputs: Artifacts that must be present before the stage starts.
        outputs: Artifacts the stage is expected to produce. Their parent
            directories are created before the operation runs.
        tool: External command to execute. Mutually exclusive with *action*.
        action: Internal operation (file writes, copies, numeric helpers).
        success: Optional predicate overriding the default "every output
            present" check.
        workdirs: Directories created before the operation runs. ``None``
            means the parents of *outputs*.
        stale: Folders left by an earlier run that the tool refuses to
            overwrite; removed right before the operation runs.
    """

    id: str
    inputs: Sequence[Path] = ()
    outputs: Sequence[Path] = ()
    tool: Optional[Tool] = None
    action: Optional[Callable[[], None]] = None
    success: Optional[Callable[[], bool]] = None
    workdirs: Optional[Sequence[Path]] = None
    stale: Sequence[Path] = ()

    def __post_init__(self) -> None:
        if (self.tool is None) == (self.action is None):
            raise ValueError(f"stage {self.id!r} needs exactly one of tool/action")

    def describe(self) -> str:
        """Return the command line (or a marker for internal stages)."""
        if self.tool is not None:
            return self.tool.build_spec().render()
        return f"<internal: {self.id}>"

    def dirs_to_create(self) -> List[Path]:
        if self.workdirs is not None:
            return [Path(d) for d in self.workdirs]
        return [Path(p).parent for p in self.outputs]

    def missing_outputs(self) -> List[Path]:
        return [p for p in self.outputs if not ArtifactStore.exists(p)]

    def succeeded(self) -> bool:
        if self.success is not None:
            return bool(self.success())
        return not self.missing_outputs()


@dataclass
class PipelineResult:
    """Outcome of a completed run."""

    name: str
    session: Optional[Session]
    variant: Optional[PipelineVariant]
    completed: List[str] = field(default_factory=list)
    elapsed: Dict[str, float] = field(default_factory=dict)

    @property
    def total_seconds(self) -> float:
        return sum(self.elapsed.values())


class Pipeline:
    """Ordered, statically known list of stages."""

    def __init__(
        self,
        name: str,
        stages: Sequence[Stage],
        store: ArtifactStore,
        *,
        session: Session | None = None,
        variant: PipelineVariant | None = None,
    ) -> None:
        self.name = name
        self.stages: tuple[Stage, ...] = tuple(stages)
        self.store = store
        self.session = session
        self.variant = variant
        _check_order(self.stages)

    @property
    def stage_ids(self) -> List[str]:
        return [s.id for s in self.stages]

    def stage(self, stage_id: str) -> Stage:
        for s in self.stages:
            if s.id == stage_id:
                return s
        raise KeyError(stage_id)

    def describe(self) -> List[tuple[str, str]]:
        """Return ``(stage_id, command)`` pairs, e.g. for ``--dry-run``."""
        return [(s.id, s.describe()) for s in self.stages]

    def run(self, engine: ExecutionEngine, *, timeout: float | None = None) -> PipelineResult:
        """Execute every stage in order, stopping at the first failure.

        Args:
            engine: Back-end used for external tools.
            timeout: Wall-clock budget per external call in seconds.

        Returns:
            :class:`PipelineResult` listing the completed stages.

        Raises:
            MissingInputArtifact: A stage input is absent before it starts.
            StageFailed: A stage exited non-zero, timed out or did not
                produce its outputs.
        """
        result = PipelineResult(self.name, self.session, self.variant)
        bound = log.bind(
            pipeline=self.name,
            session=str(self.session) if self.session else None,
            variant=self.variant.value if self.variant else None,
        )
        bound.info("pipeline.start", stages=len(self.stages))

        for stage in self.stages:
            for artifact in stage.inputs:
                if not self.store.exists(artifact):
                    bound.error("stage.missing_input", stage=stage.id, artifact=str(artifact))
                    raise MissingInputArtifact(stage.id, artifact)

            for leftover in stage.stale:
                self.store.clear(Path(leftover))
            for folder in stage.dirs_to_create():
                self.store.ensure_dir(folder)

            bound.info("stage.start", stage=stage.id)
            t0 = time.perf_counter()
            self._execute(stage, engine, timeout)
            elapsed = time.perf_counter() - t0

            if not stage.succeeded():
                missing = ", ".join(str(p) for p in stage.missing_outputs())
                reason = f"expected output missing: {missing}" if missing else "success check failed"
                bound.error("stage.failed", stage=stage.id, reason=reason)
                raise StageFailed(stage.id, reason)

            result.completed.append(stage.id)
            result.elapsed[stage.id] = elapsed
            bound.info("stage.done", stage=stage.id, elapsed_s=round(elapsed, 2))

        bound.info("pipeline.done", elapsed_s=round(result.total_seconds, 2))
        return result

    def _execute(self, stage: Stage, engine: ExecutionEngine, timeout: float | None) -> None:
        if stage.action is not None:
            try:
                stage.action()
            except HarmoprepError:
                raise
            except Exception as exc:
                log.error("stage.failed", stage=stage.id, error=repr(exc))
                raise StageFailed(stage.id, f"{type(exc).__name__}: {exc}") from exc
            return
        assert stage.tool is not None
        try:
            rc = stage.tool.execute(engine, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            log.error("stage.timeout", stage=stage.id, timeout=timeout)
            raise StageFailed(stage.id, "timeout") from exc
        if rc != 0:
            log.error("stage.failed", stage=stage.id, returncode=rc)
            raise StageFailed(stage.id, f"exit status {rc}")


def _check_order(stages: Sequence[Stage]) -> None:
    """Reject duplicate ids and inputs consumed before they are produced."""
    seen: set[str] = set()
    producer: Dict[Path, int] = {}
    for idx, stage in enumerate(stages):
        if stage.id in seen:
            raise ValueError(f"duplicate stage id {stage.id!r}")
        seen.add(stage.id)
        for out in stage.outputs:
            producer.setdefault(Path(out), idx)
    for idx, stage in enumerate(stages):
        for inp in stage.inputs:
            made_at = producer.get(Path(inp))
            if made_at is not None and made_at >= idx:
                raise ValueError(
                    f"stage {stage.id!r} consumes {inp} before stage "
                    f"{stages[made_at].id!r} produces it"
                )
