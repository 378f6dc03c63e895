"""Core infrastructure: configuration, database, errors, logging, cache, hooks."""
