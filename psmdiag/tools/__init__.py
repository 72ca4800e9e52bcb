"""Wrappers describing how each external call is run inside the engine image."""

from .base import Tool, ToolSpec
from .fsl import FslTool, fsl_available_script
from .psmd import PrecheckTool, PsmdTool

__all__ = [
    "Tool",
    "ToolSpec",
    "FslTool",
    "fsl_available_script",
    "PrecheckTool",
    "PsmdTool",
]
