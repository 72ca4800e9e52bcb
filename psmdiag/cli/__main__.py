"""Module wrapper so running ``python -m psmdiag.cli`` matches the console script."""

from psmdiag.cli import main


if __name__ == "__main__":  # pragma: no cover
    main()
