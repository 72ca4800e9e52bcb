"""Pytest configuration for psmdiag tests."""

import pytest

from psmdiag.config import PsmdConfig

# Skip the entire suite when optional heavy dependencies are unavailable.
pytest.importorskip("pandas")
pytest.importorskip("nibabel")


@pytest.fixture
def cfg() -> PsmdConfig:
    """Default configuration in preprocessing mode with one job."""
    return PsmdConfig(image="psmd:test")
