from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class StakeApiError(Exception):
    """Canonical error type for certificate, metadata and key failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class CertificateError(StakeApiError):
    """Malformed certificate input detected while converting to or from the ledger form."""


class ConfigError(StakeApiError):
    pass


__all__ = ["StakeApiError", "CertificateError", "ConfigError"]
