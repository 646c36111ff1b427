"""
Module entry-point that makes the package runnable with

    python -m harmoprep

The behaviour is identical to the *harmoprep-cli* console script.
"""

from harmoprep.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
