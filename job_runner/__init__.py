"""Background job queue and secured execution endpoint."""

__version__ = "0.1.0"
