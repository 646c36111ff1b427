"""Run tools directly on the host (FSL/MRtrix/FreeSurfer on ``$PATH``)."""

from __future__ import annotations

import os
import subprocess

import structlog

from harmoprep.tools.base import ToolSpec

from .base import ExecutionEngine

log = structlog.get_logger()

_TAIL_LINES = 20


class LocalEngine(ExecutionEngine):
    """Execute commands with :func:`subprocess.run` on the host."""

    def run(self, spec: ToolSpec, *, timeout: float | None = None) -> int:
        """Execute *spec*, capturing combined output for the log.

        Returns:
            The process return code. Non-zero codes are logged with the tail
            of the captured output; interpretation is left to the caller.
        """
        env = {**os.environ, **spec.env}
        log.info("local.run", cmd=spec.render(), cwd=str(spec.cwd) if spec.cwd else None)
        result = subprocess.run(
            list(spec.args),
            cwd=spec.cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
        if result.stdout:
            log.debug("local.output", program=spec.program, output=result.stdout)
        if result.returncode != 0:
            tail = "\n".join((result.stdout or "").splitlines()[-_TAIL_LINES:])
            log.error(
                "local.failed",
                program=spec.program,
                returncode=result.returncode,
                tail=tail,
            )
        return result.returncode
