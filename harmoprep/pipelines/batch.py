"""Run independent per-session pipelines concurrently.

Each (session, modality) job is routed, built and run on its own worker
thread; the heavy lifting happens in external processes so threads are
sufficient. A failing job is recorded and never cancels the others.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from harmoprep.engines.base import ExecutionEngine
from harmoprep.models import Modality, Session

from .artifacts import ArtifactStore
from .engine import PipelineResult
from .router import build_pipeline

log = structlog.get_logger()

Job = Tuple[Session, Modality]


@dataclass
class BatchOutcome:
    """Result of one job in a batch."""

    session: Session
    modality: Modality
    result: Optional[PipelineResult] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def expand_jobs(sessions: Iterable[Session], modalities: Sequence[Modality]) -> List[Job]:
    """Cartesian product of sessions and modalities in a stable order."""
    return [(s, Modality(m)) for s in sessions for m in modalities]


def _run_one(
    job: Job,
    store: ArtifactStore,
    engine: ExecutionEngine,
    timeout: float | None,
) -> PipelineResult:
    session, modality = job
    with structlog.contextvars.bound_contextvars(session=str(session), modality=modality.value):
        pipeline = build_pipeline(session, modality, store)
        return pipeline.run(engine, timeout=timeout)


def run_batch(
    jobs: Sequence[Job],
    store: ArtifactStore,
    engine: ExecutionEngine,
    *,
    max_workers: int = 1,
    timeout: float | None = None,
) -> List[BatchOutcome]:
    """Run *jobs* on a bounded thread pool.

    Returns:
        One :class:`BatchOutcome` per job, in the order of *jobs*.
    """
    outcomes = {job: BatchOutcome(job[0], job[1]) for job in jobs}
    if not jobs:
        return []

    workers = max(1, min(max_workers, len(jobs)))
    log.info("batch.start", jobs=len(jobs), workers=workers)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_job = {
            executor.submit(_run_one, job, store, engine, timeout): job for job in jobs
        }
        for future in as_completed(future_to_job):
            job = future_to_job[future]
            outcome = outcomes[job]
            try:
                outcome.result = future.result()
            except Exception as exc:
                outcome.error = exc
                log.error(
                    "batch.job_failed",
                    session=str(job[0]),
                    modality=job[1].value,
                    error=str(exc),
                )
            else:
                log.info("batch.job_done", session=str(job[0]), modality=job[1].value)

    ordered = [outcomes[job] for job in jobs]
    log.info(
        "batch.done",
        succeeded=sum(o.ok for o in ordered),
        failed=sum(not o.ok for o in ordered),
    )
    return ordered
