"""Execution engines."""

from .base import EngineResult, ExecutionEngine
from .docker import DockerEngine

__all__ = ["EngineResult", "ExecutionEngine", "DockerEngine"]
