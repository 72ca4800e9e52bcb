"""Acquisition of external inputs (default skeleton mask)."""

from .skeleton import acquire_mask, download_mask

__all__ = ["acquire_mask", "download_mask"]
