"""Workflow DAGs, an in-memory service registry, node-type services and an HTTP front end."""

__version__ = "0.1.0"