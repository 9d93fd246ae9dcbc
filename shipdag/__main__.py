"""Entry point for ``python -m shipdag``."""

from shipdag.cli.main import main

if __name__ == "__main__":
    main()
