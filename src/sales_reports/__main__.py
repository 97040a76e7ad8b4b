import sys

from .cli import main


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
