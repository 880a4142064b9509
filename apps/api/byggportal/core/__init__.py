"""Core infrastructure: configuration, database, errors and outbound services."""
