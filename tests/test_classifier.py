import pytest

from conftest import STARVED, pending, running, snap
from workload_reconciler.classifier import classify, is_healthy
from workload_reconciler.models import Classification, PodObservation, PodPhase


def test_all_running_and_ready_is_healthy():
    assert classify(snap(running("a"), running("b"), desired=2)) == Classification.HEALTHY


def test_fewer_pods_than_desired_is_not_healthy():
    snapshot = snap(running("a"), desired=3)
    assert not is_healthy(snapshot)
    assert classify(snapshot) == Classification.DEGRADED


def test_unknown_desired_count_needs_one_pod():
    assert classify(snap(running(), deployment=None, desired=None)) == Classification.HEALTHY


def test_terminating_pods_are_ignored():
    old = PodObservation(name="old", phase=PodPhase.RUNNING, ready=False, terminating=True)
    assert classify(snap(running("new"), old)) == Classification.HEALTHY


def test_pending_and_starved_pod_is_resource_starved():
    assert classify(snap(pending(reason=STARVED))) == Classification.RESOURCE_STARVED


def test_starved_wins_over_plain_pending_across_pods():
    snapshot = snap(pending("a"), pending("b", reason="0/3 nodes are available: 3 Insufficient cpu."), desired=2)
    assert classify(snapshot) == Classification.RESOURCE_STARVED


def test_insufficient_reason_on_running_pod_is_not_starved():
    pod = PodObservation(name="a", phase=PodPhase.RUNNING, ready=False, reason=STARVED)
    assert classify(snap(pod)) == Classification.DEGRADED


@pytest.mark.parametrize("reason", ["ErrImagePull", "ImagePullBackOff: Back-off pulling image \"web:latest\""])
def test_image_pull_failures(reason):
    assert classify(snap(pending(reason=reason))) == Classification.IMAGE_ERROR


def test_pending_without_known_reason():
    assert classify(snap(pending(reason="0/1 nodes are available: 1 node(s) had untolerated taint."))) == Classification.PENDING


def test_running_not_ready_is_degraded():
    assert classify(snap(running("a"), running("b", ready=False), desired=2)) == Classification.DEGRADED


def test_crash_looping_pod_is_degraded():
    pod = PodObservation(name="a", phase=PodPhase.RUNNING, ready=False, reason="CrashLoopBackOff")
    assert classify(snap(pod)) == Classification.DEGRADED


def test_no_pods_and_no_deployment_is_failed():
    assert classify(snap(deployment=None, desired=None)) == Classification.FAILED


def test_no_pods_and_zero_replicas_is_failed():
    assert classify(snap(desired=0)) == Classification.FAILED


def test_no_pods_while_deployment_wants_some_is_degraded():
    assert classify(snap(desired=2)) == Classification.DEGRADED


@pytest.mark.parametrize("reason", [
    "0/1 nodes are available: 1 Insufficient pods.",
    "0/2 nodes are available: 2 Insufficient ephemeral-storage.",
    "0/3 nodes are available: 3 Insufficient nvidia.com/gpu.",
])
def test_other_shortages_are_plain_pending(reason):
    assert classify(snap(pending(reason=reason))) == Classification.PENDING
