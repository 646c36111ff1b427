"""Wrappers for external preprocessing tools."""

from .base import CommandTool, Tool, ToolSpec
from .fsl import FslTool
from .freesurfer import FreeSurferTool
from .mrtrix import MrtrixTool

__all__ = [
    "Tool",
    "ToolSpec",
    "CommandTool",
    "FslTool",
    "FreeSurferTool",
    "MrtrixTool",
]
