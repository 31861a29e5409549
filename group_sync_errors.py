"""Error taxonomy for the identity provider group sync.

Fatal errors (configuration, fetch, cancellation) abort a single tenant's
reconciliation. ItemError is recorded per role and never stops a run.
"""


class GroupSyncError(Exception):
    """Base class for every error raised by the group sync."""


class ConfigurationError(GroupSyncError):
    """Tenant credentials or settings are missing or invalid."""


class FetchError(GroupSyncError):
    """The remote group listing could not be read."""


class CancellationError(GroupSyncError):
    """The caller cancelled the run."""


class StoreError(GroupSyncError):
    """A local role store operation failed."""


class ItemError(GroupSyncError):
    """A single create or delete failed."""

    def __init__(self, subject, message):
        super().__init__(f"{subject}: {message}")
        self.subject = subject
        self.message = message
