"""Built-in pipelines and adapters shipped with shipdag."""
