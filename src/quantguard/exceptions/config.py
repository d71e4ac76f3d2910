"""Configuration-related exceptions."""

from pathlib import Path
from typing import Optional

from .base import QuantGuardError


class ConfigurationError(QuantGuardError):
    """Raised when configuration is invalid or cannot be loaded."""

    def __init__(self, reason: str, source: Optional[Path] = None):
        details = {"source": str(source)} if source is not None else {}
        super().__init__(f"Invalid configuration: {reason}", details=details)
        self.reason = reason
        self.source = source
