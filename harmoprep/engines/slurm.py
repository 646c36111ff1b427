"""Slurm execution engine."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

import structlog

from harmoprep.tools.base import ToolSpec

from .base import ExecutionEngine
from .docker import docker_command

log = structlog.get_logger()


class SlurmEngine(ExecutionEngine):
    """Run tools through ``srun``.

    With *images* set, each command is wrapped in ``docker run`` exactly as
    :class:`~harmoprep.engines.docker.DockerEngine` would build it; otherwise
    the tools are expected on the compute node's ``$PATH``.
    """

    def __init__(
        self,
        *,
        images: Mapping[str, str] | None = None,
        mount: Path | None = None,
        srun_args: Sequence[str] = (),
    ) -> None:
        self.images = dict(images) if images else None
        self.mount = Path(mount) if mount else None
        self.srun_args = tuple(srun_args)

    def command(self, spec: ToolSpec) -> list[str]:
        """Return the full ``srun`` vector for *spec*."""
        cmd = ["srun", *self.srun_args]
        if self.images is not None and self.mount is not None:
            image = self.images.get(spec.suite)
            if image is None:
                raise ValueError(f"No container image configured for suite '{spec.suite}'")
            return cmd + docker_command(spec, image=image, mount=self.mount)
        if spec.cwd is not None:
            cmd.append(f"--chdir={spec.cwd}")
        return cmd + list(spec.args)

    def run(self, spec: ToolSpec, *, timeout: float | None = None) -> int:
        cmd = self.command(spec)
        log.info("slurm.run", args=cmd)
        result = subprocess.run(
            cmd,
            env={**os.environ, **spec.env},
            timeout=timeout,
            check=False,
        )
        if result.returncode != 0:
            log.error("slurm.failed", program=spec.program, returncode=result.returncode)
        return result.returncode
