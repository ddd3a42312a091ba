from __future__ import annotations


class NotFoundError(LookupError):
    """A user or questionnaire required by the caller does not exist."""


class AccessDeniedError(PermissionError):
    """The caller's role may not use the requested questionnaire."""
