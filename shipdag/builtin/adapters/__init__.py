"""Adapters bundled with shipdag (currently the in-memory mocks)."""
