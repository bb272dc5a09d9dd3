"""Data types shared by the client, classifier and reconciler."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List


class PodPhase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PodPhase":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Classification(str, Enum):
    """Aggregate state of a workload as seen by one poll."""
    UNKNOWN = "Unknown"
    HEALTHY = "Healthy"
    PENDING = "Pending"
    IMAGE_ERROR = "ImageError"
    RESOURCE_STARVED = "ResourceStarved"
    DEGRADED = "Degraded"
    FAILED = "Failed"


class Action(str, Enum):
    """Remediations the reconciler knows how to apply."""
    REDUCE_RESOURCE_FOOTPRINT = "ReduceResourceFootprint"
    FORCE_RESCHEDULE = "ForceReschedule"
    REBUILD_AND_RELOAD = "RebuildAndReload"
    EXPOSE_EXTERNALLY = "ExposeExternally"


class FinalState(str, Enum):
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    FAILED = "Failed"


@dataclass(frozen=True)
class WorkloadRef:
    """
    Identifies the workload to reconcile.

    ``deployment`` and ``service`` are optional; when missing they are
    looked up in ``namespace`` using ``selector``.
    """
    namespace: str
    selector: str
    deployment: Optional[str] = None
    service: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.namespace}/{self.deployment or self.selector}"


@dataclass(frozen=True)
class PodObservation:
    """Snapshot of a single pod."""
    name: str
    phase: PodPhase
    ready: bool = False
    reason: Optional[str] = None
    terminating: bool = False


@dataclass(frozen=True)
class WorkloadSnapshot:
    """Everything observed for a workload in a single poll."""
    pods: List[PodObservation] = field(default_factory=list)
    deployment: Optional[str] = None
    desired_replicas: Optional[int] = None

    @property
    def active_pods(self) -> List[PodObservation]:
        return [p for p in self.pods if not p.terminating]


@dataclass(frozen=True)
class ResourceSpec:
    """Requests and limits of the first container in a pod template."""
    container: str
    cpu_request: Optional[str] = None
    memory_request: Optional[str] = None
    cpu_limit: Optional[str] = None
    memory_limit: Optional[str] = None

    def to_resources(self) -> Dict[str, Dict[str, str]]:
        """Render as a Kubernetes ``resources`` block, skipping unset values."""
        requests = {}
        limits = {}
        if self.cpu_request:
            requests["cpu"] = self.cpu_request
        if self.memory_request:
            requests["memory"] = self.memory_request
        if self.cpu_limit:
            limits["cpu"] = self.cpu_limit
        if self.memory_limit:
            limits["memory"] = self.memory_limit

        resources = {}
        if requests:
            resources["requests"] = requests
        if limits:
            resources["limits"] = limits
        return resources


@dataclass
class RemediationRecord:
    """
    One entry of the remediation log.

    Appended before the action runs; ``outcome`` and ``detail`` are filled in
    once the action returns and ``state_after`` by the next poll.
    """
    attempt: int
    action: Action
    state_before: Classification
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state_after: Optional[Classification] = None
    outcome: str = "pending"
    detail: str = ""
    ineffective: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "attempt": self.attempt,
            "action": self.action.value,
            "stateBefore": self.state_before.value,
            "stateAfter": self.state_after.value if self.state_after else None,
            "outcome": self.outcome,
            "detail": self.detail,
            "ineffective": self.ineffective,
        }


@dataclass
class ReconciliationResult:
    final_state: FinalState
    attempts_used: int
    remediation_log: List[RemediationRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "finalState": self.final_state.value,
            "attemptsUsed": self.attempts_used,
            "remediationLog": [r.to_dict() for r in self.remediation_log],
            "errors": list(self.errors),
        }


def snapshot_as_dict(snapshot: WorkloadSnapshot) -> Dict[str, Any]:
    """Plain dict form of a snapshot, used for debug logging."""
    data = asdict(snapshot)
    for pod in data["pods"]:
        pod["phase"] = pod["phase"].value
    return data
