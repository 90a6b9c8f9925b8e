"""Relay exceptions.

Every failure raised out of the relay pipeline carries the processing stage it
came from, so operators can tell credential problems apart from backend or
transport problems in the logs.
"""
from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base exception for relay failures."""

    def __init__(
        self,
        message: str,
        stage: str = "relay",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)


class AuthExchangeError(RelayError):
    """Raised when the identity provider rejects the token exchange."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "credential_exchange", details)


class BackendStreamError(RelayError):
    """Raised when the backend call fails or returns a malformed stream."""

    def __init__(
        self,
        message: str,
        stage: str = "backend",
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status = status
        super().__init__(message, stage, details)


class ClassificationSkip(Exception):
    """Raised for inbound events the relay intentionally ignores."""

    def __init__(self, kind: str, reason: str = "unsupported notification kind"):
        self.kind = kind
        self.reason = reason
        super().__init__(f"{reason}: {kind}")
