"""shipdag core: domain model, orchestration, stages, ports and configuration.

Nothing here talks to a real tool or service; drivers live in
``shipdag.drivers`` and in-memory ports in ``shipdag.builtin.adapters.mock``.
"""
