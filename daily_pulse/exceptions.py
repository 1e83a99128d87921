"""Exception types shared across Daily Pulse."""

from __future__ import annotations

from typing import Dict


class ValidationError(ValueError):
    """Raised when user input is rejected; carries field-level messages."""

    def __init__(self, errors: Dict[str, str]) -> None:
        super().__init__("; ".join(f"{field}: {message}" for field, message in errors.items()))
        self.errors = dict(errors)


class AuthorizationError(PermissionError):
    """Raised when the access policy denies a mutating operation."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ConfigError(RuntimeError):
    """Stored configuration is missing or invalid."""


class DeliveryError(RuntimeError):
    """Raised by a messenger when a message could not be delivered."""


__all__ = ["ValidationError", "AuthorizationError", "ConfigError", "DeliveryError"]
