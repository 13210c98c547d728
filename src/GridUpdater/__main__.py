"""Allow ``python -m GridUpdater`` to run the grid updater CLI."""

from .cli import cli_main

if __name__ == "__main__":
    cli_main()
