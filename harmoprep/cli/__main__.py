"""Allow ``python -m harmoprep.cli``."""

from harmoprep.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
