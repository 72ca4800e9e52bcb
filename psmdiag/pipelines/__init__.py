"""Per-subject and batch pipelines.

Submodules are imported explicitly by callers; nothing is re-exported here so
that lightweight modules (``types``) stay importable without the scientific
stack.
"""
