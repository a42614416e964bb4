"""Remote session management for kernel crash reproduction."""

__version__ = "0.1.0"
