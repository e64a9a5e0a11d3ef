# slashy/core_app/errors.py
from typing import Any, Dict, Optional


class SlashyError(Exception):
    """Base error. Carries the HTTP status the entry points answer with."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SlashyError):
    status_code = 400


class NotFoundError(ValidationError):
    status_code = 404


class ConflictError(ValidationError):
    status_code = 409


class Unauthorized(SlashyError):
    status_code = 401


class UpstreamProviderError(SlashyError):
    """Non-2xx or unusable answer from the tool provider, completion provider or auth service."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None,
                 provider: Optional[str] = None):
        super().__init__(message, details=details, status_code=status_code or 500)
        self.provider = provider


class PersistenceError(SlashyError):
    status_code = 500


class PollingTimeoutError(SlashyError):
    status_code = 408


class AbandonedError(SlashyError):
    status_code = 499
