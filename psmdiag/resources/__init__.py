"""Packaged defaults loaded through :mod:`importlib.resources`."""
