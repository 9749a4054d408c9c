"""chatrelay: keeps a Discord Gateway connection alive from short-lived invocations."""

__version__ = "0.1.0"
