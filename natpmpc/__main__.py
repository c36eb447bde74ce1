"""Run the natpmpc command line interface."""

from __future__ import annotations

from natpmpc.cli.main import main

if __name__ == "__main__":
    main()
