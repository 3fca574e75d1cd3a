"""
Error taxonomy shared by services and routes.

Each class carries the HTTP status it maps to; the exception handler in
app/main.py renders any AppError as {"detail": message} with that status.
"""

from typing import Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing request input."""
    status_code = 400


class AuthError(AppError):
    """Unauthenticated caller or invalid signature."""
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class StateConflictError(AppError):
    """
    Another process already claimed or completed the action.
    Raised inside the tune claim transaction and always handled there.
    """
    status_code = 409


class ProviderError(AppError):
    """An upstream AI / payment / email provider failed or timed out."""
    status_code = 500

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.upstream_status = status


class GenerationFailed(AppError):
    """Primary and fallback generation attempts both failed."""
    status_code = 500
