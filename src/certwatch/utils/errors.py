from typing import Optional


class CertwatchError(Exception):
    """Base class for certwatch runtime errors."""


class ConfigError(CertwatchError):
    """
    Raised when settings or the config file cannot be loaded.
    These errors are fatal at startup.
    """


class DecodeError(CertwatchError):
    """
    Raised when a stored value cannot be decoded into payload and timestamp.
    """
    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Cannot decode stored value for '{key}': {reason}")


class CertReconcileError(CertwatchError):
    """
    Raised when one certificate's reconciliation stops at a failing component.

    `changed` records whether an earlier component of the same certificate
    was already rewritten.
    """
    def __init__(self, name: str, key: str, cause: Exception, changed: bool = False):
        self.name = name
        self.key = key
        self.cause = cause
        self.changed = changed
        super().__init__(f"Reconciliation of '{name}' failed at '{key}': {cause}")


class ReconcilePassError(CertwatchError):
    """
    Raised when a full reconciliation pass stops at a failing certificate.

    `changed` records whether any mirror file was rewritten before the failure.
    """
    def __init__(self, name: str, cause: Exception, changed: bool = False):
        self.name = name
        self.cause = cause
        self.changed = changed
        super().__init__(f"Reconciliation of '{name}' failed: {cause}")


def describe_error(exc: Optional[BaseException]) -> str:
    """Return a compact 'Type: message' description for log output."""
    if exc is None:
        return ""
    message = str(exc)
    if not message:
        return type(exc).__name__
    return f"{type(exc).__name__}: {message}"
