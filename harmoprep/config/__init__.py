"""
Configuration package façade.

* :func:`load_config` – locate and validate ``harmoprep.yaml``.
* :class:`HarmoprepConfig` – the validated root model.

Scanner calibration tables live in :mod:`harmoprep.config.acquisition` and are
imported from there directly.
"""

from .loader import load_config  # noqa: F401
from .schema import HarmoprepConfig  # noqa: F401

__all__: list[str] = ["load_config", "HarmoprepConfig"]
