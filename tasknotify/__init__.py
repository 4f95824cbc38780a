"""Task notification pipeline: commit-gated task events, broker fan-out and reminders."""

__version__ = "1.0.0"
