"""
psmdiag package initialisation.

The module performs two small tasks:

1. **Expose the version string**
   ``psmdiag.__version__`` is resolved at import-time from the installed
   distribution metadata so that editable installs, wheels and test runs all
   report the same value.

2. **Re-export the configuration loader**
   :func:`psmdiag.config.load_config` is available at the top level so
   call-sites can simply do::

       from psmdiag import load_config

Module attributes
-----------------
__version__ : str
    Semantic version derived from the installed distribution.
load_config : Callable
    Shortcut to :pyfunc:`psmdiag.config.load_config`.
"""

from importlib.metadata import PackageNotFoundError, version

# --------------------------------------------------------------------------- #
# Version resolution
# --------------------------------------------------------------------------- #
try:
    __version__: str = version("psmdiag")
except PackageNotFoundError:
    # Source tree without an installed distribution.
    __version__ = "0.0.0"

# --------------------------------------------------------------------------- #
# Public re-exports
# --------------------------------------------------------------------------- #
from .config import load_config  # noqa: E402 – deliberate late import

__all__: list[str] = ["load_config", "__version__"]
