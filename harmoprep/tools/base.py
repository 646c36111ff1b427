"""Base classes for external tool wrappers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from harmoprep.engines import ExecutionEngine


@dataclass(frozen=True)
class ToolSpec:
    """Specification returned by :meth:`Tool.build_spec`.

    Attributes:
        suite: Tool suite (``fsl``, ``mrtrix``, ``freesurfer``); selects the
            container image on container-based engines.
        args: Full command vector, program name first.
        env: Extra environment variables for the process.
        cwd: Working directory for tools that only operate on relative names.
    """

    suite: str
    args: Sequence[str]
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Path | None = None

    @property
    def program(self) -> str:
        return self.args[0]

    def render(self) -> str:
        """Return the command as a single shell-like string (for logs)."""
        return " ".join(self.args)


class Tool:
    """Base class for wrappers around external utilities."""

    def execute(self, engine: "ExecutionEngine", *, timeout: float | None = None) -> int:
        """Build a :class:`ToolSpec` and execute it with *engine*."""
        return engine.run(self.build_spec(), timeout=timeout)

    def build_spec(self) -> ToolSpec:
        """Return a :class:`ToolSpec` describing how to run this tool."""
        raise NotImplementedError


@dataclass
class CommandTool(Tool):
    """Run a fixed command vector from a given tool suite."""

    suite: str
    command: Sequence[str | Path]
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Path | None = None

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the specification for the configured command."""
        return ToolSpec(
            self.suite,
            tuple(str(c) for c in self.command),
            dict(self.env),
            self.cwd,
        )
