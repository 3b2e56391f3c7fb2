"""Exceptions raised by the cluster topology engine."""

from __future__ import annotations

from typing import Optional


class ManagerError(Exception):
    """Base exception for valkey manager errors."""
    pass


class PreconditionError(ManagerError):
    """Raised when an input cannot be used to plan or configure the cluster."""
    pass


class ClusterInfoParseError(ManagerError):
    """Raised when a CLUSTER INFO report yields no usable fields."""
    pass


class ResolutionError(ManagerError):
    """Raised when a member's network address cannot be resolved."""

    def __init__(self, index: int, reason: str):
        super().__init__(f"failed to resolve address of member {index}: {reason}")
        self.index = index
        self.reason = reason


class ConfigurationError(ManagerError):
    """Raised when a step fatal to the current configuration attempt fails."""

    def __init__(self, member_index: int, operation: str, cause: Optional[BaseException] = None):
        message = f"member {member_index}: {operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.member_index = member_index
        self.operation = operation
        self.cause = cause


class SettingsError(ManagerError):
    """Raised when the process configuration is invalid."""
    pass
