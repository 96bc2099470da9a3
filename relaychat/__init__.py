"""relaychat - multi-provider streaming chat orchestration."""

__version__ = "0.1.0"
