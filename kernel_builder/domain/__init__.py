"""Domain layer primitives (exceptions)."""

from . import exceptions
from .exceptions import DomainError, SSHError

__all__ = ["DomainError", "SSHError", "exceptions"]
