"""Entry point for shipdag CLI when run as python -m shipdag.cli."""

if __name__ == "__main__":
    from shipdag.cli.main import main

    main()
