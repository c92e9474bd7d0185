"""Help desk conversation orchestrator."""

__version__ = "0.1.0"
