"""Classify a workload snapshot into a single aggregate state."""

from .models import Classification, PodPhase, WorkloadSnapshot
from .utils import is_image_pull_failure, is_resource_insufficient_message


def is_healthy(snapshot: WorkloadSnapshot) -> bool:
    """Every live pod is Running and ready, and there are enough of them."""
    pods = snapshot.active_pods
    if not pods:
        return False
    if not all(p.phase == PodPhase.RUNNING and p.ready for p in pods):
        return False
    desired = snapshot.desired_replicas if snapshot.desired_replicas is not None else 1
    return len(pods) >= desired


def classify(snapshot: WorkloadSnapshot) -> Classification:
    """
    Compute the aggregate state of a workload.

    Checks run from most to least specific, so a pod that is both Pending
    and short of cpu/memory is ResourceStarved rather than Pending.
    """
    pods = snapshot.active_pods

    if is_healthy(snapshot):
        return Classification.HEALTHY

    if not snapshot.pods and (snapshot.deployment is None or snapshot.desired_replicas == 0):
        return Classification.FAILED

    if any(p.phase == PodPhase.PENDING and is_resource_insufficient_message(p.reason) for p in pods):
        return Classification.RESOURCE_STARVED

    if any(is_image_pull_failure(p.reason) for p in pods):
        return Classification.IMAGE_ERROR

    if any(p.phase == PodPhase.PENDING for p in pods):
        return Classification.PENDING

    # Running but not ready, failed pods, too few pods, or nothing created yet
    return Classification.DEGRADED
