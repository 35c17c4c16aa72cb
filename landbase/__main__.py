# FILE: landbase/__main__.py
# Enables `python -m landbase` to launch the CLI.
from __future__ import annotations


def _run() -> None:
    from landbase.cli import main as _cli_main

    _cli_main()


if __name__ == "__main__":
    _run()
