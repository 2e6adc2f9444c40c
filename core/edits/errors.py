from __future__ import annotations


class EditError(Exception):
    """
    Base class for failures of add/remove edits.

    `user_message` is safe to show in the UI; `str(err)` may carry more detail.
    """

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ValidationError(EditError):
    """Rejected locally before any network call; never retried."""


class RemoteFailure(EditError):
    """Backend answered non-2xx, sent garbage, or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(
            message,
            user_message=user_message or "The server rejected the change. Please try again.",
        )
        self.status_code = status_code


class DuplicateEditError(EditError):
    """Another edit for the same tree is still in flight."""
