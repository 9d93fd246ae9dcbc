"""CLI command modules for shipdag."""
