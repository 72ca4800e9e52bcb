"""
Configuration package façade.

* :func:`load_config` – resolve, merge and validate ``psmd.yaml`` into a
  single :class:`PsmdConfig` instance.
* :class:`PsmdConfig` / :class:`FallbackConfig` – immutable pydantic models
  passed explicitly to every pipeline stage.
"""

from .loader import load_config  # noqa: F401
from .schema import FallbackConfig, PsmdConfig  # noqa: F401

__all__: list[str] = ["load_config", "PsmdConfig", "FallbackConfig"]
