"""ICS cyber risk assessment wizard backend."""

__version__ = "0.1.0"
