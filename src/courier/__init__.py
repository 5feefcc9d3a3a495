"""Courier - scheduled message delivery for Slack workspaces."""

__version__ = "0.1.0"
