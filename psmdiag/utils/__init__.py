"""Shared helpers: subprocess execution, logging, Docker probes and errors."""
