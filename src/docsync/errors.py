"""Exception hierarchy for docsync.

Per-document errors (ParseError, StoreError, GatewayError) are isolated by the
reconciler in incremental mode. InvariantViolation and SyncAborted end a pass.
"""


class DocSyncError(Exception):
    """Base class for all docsync errors."""


class ParseError(DocSyncError):
    """Malformed markup in a single document."""


class StoreError(DocSyncError):
    """The persistent store failed (connectivity, constraint, schema)."""


class GatewayError(DocSyncError):
    """The embedding gateway failed or returned an unusable response."""


class InvariantViolation(DocSyncError):
    """An internal invariant was broken. Always a bug, never input-dependent."""


class SyncAborted(DocSyncError):
    """A sync pass stopped before completion.

    Raised when a full refresh fails after its destructive phase. The partial
    report is attached so callers can say what was committed before the abort.
    """

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report
