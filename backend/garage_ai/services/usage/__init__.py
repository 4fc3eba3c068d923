"""Monthly usage counters and AI event log."""
from .recorder import UsageRecorder, get_usage_recorder

__all__ = ["UsageRecorder", "get_usage_recorder"]
