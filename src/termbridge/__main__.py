"""Module entrypoint for `python -m termbridge`."""

from termbridge.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
