"""
Module entry-point that makes the package runnable with

    python -m psmdiag

The behaviour is identical to the *psmdiag-cli* console script because the
Click command imported below performs all argument handling.
"""

from psmdiag.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
