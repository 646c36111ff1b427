"""
Locate, parse and validate ``harmoprep.yaml``.

The first existing candidate wins:

1. the path given with ``--config``;
2. ``<root>/code/config/harmoprep.yaml`` next to the study data;
3. ``harmoprep/resources/default_config.yaml`` shipped with the package.

Relative directories in the chosen file are anchored at the study root before
the :class:`~harmoprep.config.schema.HarmoprepConfig` is handed out.
"""

from __future__ import annotations

from importlib.resources import as_file, files
from pathlib import Path
from typing import Optional

import structlog
import yaml
from pydantic import ValidationError

from .schema import HarmoprepConfig

log = structlog.get_logger()

CONFIG_NAME = "harmoprep.yaml"
_PACKAGED = files("harmoprep.resources") / "default_config.yaml"


def project_config(root: Path) -> Path:
    """Return the study-local override location."""
    return root / "code" / "config" / CONFIG_NAME


def _read(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Cannot parse {path} – {exc}") from exc
    return data or {}


def load_config(
    *,
    config_path: Optional[str | Path] = None,
    dataset_root: Optional[str | Path] = None,
) -> HarmoprepConfig:
    """Return the validated configuration for *dataset_root*.

    Args:
        config_path: Explicit YAML file; skips the search when it exists.
        dataset_root: Study root holding ``bids/`` and ``derivatives/``.
            Defaults to the current directory.

    Raises:
        RuntimeError: When the YAML cannot be parsed or fails validation.
    """
    root = Path(dataset_root).expanduser().resolve() if dataset_root else Path.cwd()
    candidates = [project_config(root)]
    if config_path:
        candidates.insert(0, Path(config_path).expanduser().resolve())

    source = next((p for p in candidates if p.is_file()), None)
    if source is None:
        with as_file(_PACKAGED) as packaged:
            data = _read(packaged)
        origin = "package-default"
    else:
        data = _read(source)
        origin = str(source)

    try:
        cfg = HarmoprepConfig.model_validate(data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration – {exc}") from exc

    log.debug("config.loaded", source=origin, root=str(root), engine=cfg.engine)
    return cfg.anchored(root)
