"""Chat-agent toolkit: IM file tools, fetch tasks, daemon registry and reply streaming."""

__version__ = "0.1.7"