"""Execution back-ends for running external neuroimaging tools."""

from __future__ import annotations

from abc import ABC, abstractmethod

from harmoprep.tools.base import ToolSpec


class ExecutionEngine(ABC):
    """Abstract execution engine.

    Concrete implementations launch the process described by a
    :class:`~harmoprep.tools.base.ToolSpec` (on the host, in a container, or
    through a scheduler). The interface is intentionally small so new engines
    can be added without touching the pipelines.
    """

    @abstractmethod
    def run(self, spec: ToolSpec, *, timeout: float | None = None) -> int:
        """Run *spec* and block until it exits.

        Args:
            spec: Command, environment and working directory to use.
            timeout: Wall-clock budget in seconds; ``None`` disables it.

        Returns:
            Process return code.

        Raises:
            subprocess.TimeoutExpired: If *timeout* elapses. The child is
                killed before the exception propagates.
        """
        raise NotImplementedError
