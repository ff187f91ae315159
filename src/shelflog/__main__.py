"""Main entry point for ``python -m shelflog``."""

from shelflog.cli import main

if __name__ == "__main__":
    main()
