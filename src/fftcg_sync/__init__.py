"""Incremental, checkpointed sync of the Final Fantasy TCG card catalog."""

__version__ = "0.1.0"
