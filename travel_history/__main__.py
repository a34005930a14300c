"""Module entry point: python -m travel_history ..."""

from .cli import main


if __name__ == "__main__":
    raise SystemExit(main())
