"""Onboarding error types."""

from __future__ import annotations


class OnboardingError(Exception):
    """Base class for onboarding failures."""


class ValidationError(OnboardingError):
    """An answer was rejected; the message is shown to the user before re-prompting."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TimeoutExpired(OnboardingError, TimeoutError):
    """A reply or reaction wait reached its deadline with no matching event."""

    def __init__(self, what: str, timeout: float) -> None:
        super().__init__(f"No {what} within {timeout:g}s")
        self.what = what
        self.timeout = timeout


class SinkError(OnboardingError):
    """Submission to an external sink failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PrivilegeResolutionError(OnboardingError):
    """A configured role could not be resolved in the guild."""

    def __init__(self, role: str, role_id: str) -> None:
        super().__init__(f"{role} role not found (id={role_id or '<unset>'})")
        self.role = role
        self.role_id = role_id
