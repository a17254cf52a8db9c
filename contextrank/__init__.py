"""contextrank: pick the buffers most related to a prompt."""

__version__ = "0.1.0"
