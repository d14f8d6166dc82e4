"""
Exception hierarchy for quorumctl

Transient errors are retried on the next reconcile; nothing here is fatal to the
controller process.
"""


class QuorumctlError(Exception):
    """Base class for all quorumctl errors"""


class StoreError(QuorumctlError):
    """The versioned object store rejected or failed an operation"""


class ConflictError(StoreError):
    """A write carried a stale version token, or created an existing object"""

    def __init__(self, kind: str, name: str, resource_version: int | None = None):
        self.kind = kind
        self.name = name
        self.resource_version = resource_version
        super().__init__(
            f"Conflict writing {kind}/{name} at version {resource_version}"
        )


class TransientReconcileError(QuorumctlError):
    """The reconcile did not finish; the next scheduled reconcile retries it"""


class ApplyExhaustedError(TransientReconcileError):
    """The applier ran out of conflict retries"""

    def __init__(self, kind: str, name: str, attempts: int):
        self.kind = kind
        self.name = name
        self.attempts = attempts
        super().__init__(
            f"Gave up applying {kind}/{name} after {attempts} conflicting attempts"
        )


class ReconcileCancelledError(TransientReconcileError):
    """The surrounding reconcile was cancelled or ran past its deadline"""


class MetricsQueryError(QuorumctlError):
    """The external time-series source returned a payload we cannot interpret"""
