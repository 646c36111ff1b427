"""Docker execution engine."""

from __future__ import annotations

import subprocess
import uuid
from pathlib import Path
from typing import Mapping

import structlog

from harmoprep.tools.base import ToolSpec

from .base import ExecutionEngine

log = structlog.get_logger()


def docker_command(
    spec: ToolSpec,
    *,
    image: str,
    mount: Path,
    platform: str | None = None,
    name: str | None = None,
) -> list[str]:
    """Return the ``docker run`` vector that executes *spec* inside *image*.

    *mount* is bind-mounted at the same path inside the container so the
    absolute paths produced by the pipelines stay valid. *name* labels the
    container so it can be stopped from outside.
    """
    cmd: list[str] = ["docker", "run", "--rm"]
    if platform:
        cmd += ["--platform", platform]
    if name:
        cmd += ["--name", name]
    cmd += ["-v", f"{mount}:{mount}"]
    if spec.cwd is not None:
        cmd += ["-w", str(spec.cwd)]
    for key, value in spec.env.items():
        cmd += ["-e", f"{key}={value}"]
    cmd.append(image)
    cmd.extend(spec.args)
    return cmd


class DockerEngine(ExecutionEngine):
    """Run tools inside Docker containers, one image per tool suite."""

    def __init__(
        self,
        images: Mapping[str, str],
        mount: Path,
        platform: str | None = None,
    ) -> None:
        """Configure the engine.

        Args:
            images: Tool suite (``fsl``, ``mrtrix``, ...) to image reference.
            mount: Host directory shared with the container (dataset root).
            platform: Optional ``docker --platform`` value to request a
                specific architecture when pulling the image.
        """
        self.images = dict(images)
        self.mount = Path(mount)
        self.platform = platform

    def image_for(self, spec: ToolSpec) -> str:
        try:
            return self.images[spec.suite]
        except KeyError:
            raise ValueError(f"No container image configured for suite '{spec.suite}'") from None

    def run(self, spec: ToolSpec, *, timeout: float | None = None) -> int:
        """Execute *spec* in the suite's image and return Docker's exit code.

        On timeout the container is killed before
        :class:`subprocess.TimeoutExpired` propagates; stopping the ``docker``
        client alone leaves it running.
        """
        image = self.image_for(spec)
        name = f"harmoprep-{uuid.uuid4().hex[:12]}"
        cmd = docker_command(spec, image=image, mount=self.mount, platform=self.platform, name=name)
        log.info("docker.run", image=image, container=name, args=list(spec.args))
        try:
            result = subprocess.run(cmd, timeout=timeout, check=False)
        except subprocess.TimeoutExpired:
            log.error("docker.timeout", container=name, timeout=timeout)
            self.kill(name)
            raise
        if result.returncode != 0:
            log.error("docker.failed", image=image, returncode=result.returncode)
        return result.returncode

    @staticmethod
    def kill(name: str) -> None:
        result = subprocess.run(["docker", "kill", name], capture_output=True, text=True, check=False)
        if result.returncode != 0:
            log.warning("docker.kill_failed", container=name, stderr=result.stderr.strip())
