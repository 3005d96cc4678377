"""
Error taxonomy for linkhop.

Not-found on the redirect path is NOT an error (the resolver returns None);
these exceptions cover the owner-facing analytics path and provider internals.
"""


class LinkNotFoundError(LookupError):
    """The requested link does not exist."""


class NotAuthorizedError(PermissionError):
    """The caller does not own the requested link."""


class InvalidColumnError(ValueError):
    """A grouping column outside the analytics allow-list was requested."""

    def __init__(self, column: str):
        super().__init__(f"Invalid analytics column: {column!r}")
        self.column = column


class GeoLookupError(RuntimeError):
    """Raised inside a geo provider; never escapes `GeoProvider.lookup`."""
