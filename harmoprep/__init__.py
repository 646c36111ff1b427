"""
harmoprep: scanner-aware preprocessing for multi-site T1, ASL and DTI data.

Top-level names:

``__version__``
    Version of the installed distribution (``"0.0.0"`` in an uninstalled
    checkout).
``load_config``
    Shortcut to :func:`harmoprep.config.load_config`.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("harmoprep")
except PackageNotFoundError:
    __version__ = "0.0.0"

from .config import load_config  # noqa: E402

__all__: list[str] = ["load_config", "__version__"]
