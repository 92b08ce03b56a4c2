"""Errors raised by the storage tool."""

from __future__ import annotations


class StorageToolError(Exception):
    """Base class for every error the tool reports to the user."""


class InvalidInputError(StorageToolError):
    """A required value is missing, flags conflict or an input is malformed."""


class ConfigError(StorageToolError):
    """AWS profile, credentials or the defaults file could not be resolved."""


class RoleStoreError(StorageToolError):
    """An IAM call failed for a reason other than the role being absent."""

    def __init__(self, role_name: str, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed for role '{role_name}': {message}")
        self.role_name = role_name
        self.operation = operation
