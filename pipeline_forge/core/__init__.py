"""Core package: configuration, logging, schemas and the domain engines."""
