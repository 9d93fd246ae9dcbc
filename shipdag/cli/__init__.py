"""Command-line interface for shipdag."""
