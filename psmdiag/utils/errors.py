"""Custom exceptions used across the PSMD diagnostics pipeline.

Everything raised inside a subject pipeline derives from :class:`PsmdError`
so the scheduler can turn it into a ``fail`` outcome without catching
unrelated programming errors by name.
"""

from __future__ import annotations


class PsmdError(RuntimeError):
    """Base class for expected, per-subject or pre-flight failures."""


class MissingFile(PsmdError):
    """A required input (``.bval``, ``.bvec``, mask, derived map) is absent."""


class NiftiNotFound(MissingFile):
    """No image can be told apart from ``*.nii.bval`` / ``*.nii.bvec`` metadata."""


class MaskAcquisitionFailure(PsmdError):
    """The skeleton mask could not be supplied, inherited or downloaded."""


class FallbackComputationFailure(PsmdError):
    """A tool in the b0-threshold → dtifit sequence is unavailable or failed."""


class NoResultFound(PsmdError):
    """Captured engine output holds no ``PSMD is <number>`` line."""


class NoValidSubjects(PsmdError):
    """A batch root contains no directory that resolves as a subject."""


class EngineUnavailable(PsmdError):
    """The container runtime needed to reach the engine is missing."""
