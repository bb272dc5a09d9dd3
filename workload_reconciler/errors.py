"""Exceptions raised while reconciling a workload."""

from typing import List, Optional


class ReconcilerError(Exception):
    """Base class for reconciler errors."""


class TransientCallError(ReconcilerError):
    """A single orchestrator call failed; the next attempt may succeed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FatalReconcilerError(ReconcilerError):
    """
    Aborts a run. Carries whatever was done before the abort so that the
    caller can still report it.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.attempts_used = 0
        self.remediation_log: List = []
        self.errors: List[str] = []


class BackendUnavailable(FatalReconcilerError):
    """The Kubernetes API cannot be reached."""


class WorkloadNotFound(FatalReconcilerError):
    """Neither pods nor a deployment exist for the workload."""
