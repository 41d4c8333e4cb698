"""Read-only verification of control-plane server group placement."""

__version__ = "0.1.0"
