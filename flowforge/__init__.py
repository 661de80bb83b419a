"""FlowForge session and authentication state manager."""

__version__ = "1.0.0"
