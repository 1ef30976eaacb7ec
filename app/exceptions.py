"""Error types raised by the bulk edit services.

Every error is caught at the row or page boundary of a batch and turned into
a failed result, so none of these abort a run on their own.
"""


class BulkEditError(Exception):
    """Base class for bulk edit failures."""


class ValidationError(BulkEditError):
    """Input rejected locally, before any remote call."""


class NotFoundError(BulkEditError):
    """Identifier or metafield lookup returned no match."""


class RemoteMutationError(BulkEditError):
    """Mutation response carried user errors."""

    def __init__(self, user_errors):
        self.user_errors = user_errors or []
        message = ", ".join(e.get("message", "unknown") for e in self.user_errors) or "Failed"
        super().__init__(message)


class TransportError(BulkEditError):
    """The remote call itself failed (network, auth, GraphQL errors)."""


class RestoreError(BulkEditError):
    """Audit entry cannot be restored (consumed or in progress)."""


def status_for(error: Exception) -> int:
    """HTTP status code for an error raised out of a service call."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, RestoreError):
        return 409
    if isinstance(error, TransportError):
        return 502
    return 500
