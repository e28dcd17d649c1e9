"""
Custom exceptions for Stratapath.

All Stratapath exceptions inherit from StratapathError for easy catching.
Geometry code never raises these for degenerate input; they cover
configuration and collaborator failures only.
"""

from typing import Any


class StratapathError(Exception):
    """Base exception for all Stratapath errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(StratapathError):
    """Raised when configuration is invalid or missing."""

    pass


class SlicingError(StratapathError):
    """Raised when the mesh-slicing collaborator cannot provide layer input."""

    def __init__(
        self,
        message: str,
        layer_index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.layer_index = layer_index
