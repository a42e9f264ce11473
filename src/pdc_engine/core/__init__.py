"""Core engine: configuration, value objects and the pipeline facade."""
