import pytest

from conftest import FakeWorkloadClient, pending, running, snap
from workload_reconciler.errors import TransientCallError
from workload_reconciler.models import Action, PodObservation, PodPhase, ResourceSpec, WorkloadRef
from workload_reconciler.remediations import Remediator


def prepared(client, ref):
    # Load the client's current pods the way a poll would
    client.snapshot(ref)
    return client


def test_force_reschedule_leaves_running_and_terminating_pods(ref):
    terminating = PodObservation(name="old", phase=PodPhase.PENDING, terminating=True)
    client = prepared(FakeWorkloadClient([snap(running("a"), pending("b"), terminating)]), ref)

    outcome, detail = Remediator(client).force_reschedule(ref)

    assert outcome == "applied"
    assert detail == "deleted b"


def test_force_reschedule_with_nothing_to_delete(ref):
    client = prepared(FakeWorkloadClient([snap(running("a"))]), ref)

    assert Remediator(client).force_reschedule(ref) == ("skipped", "no non-running pods")


def test_plan_substitutes_reschedule_at_floor(ref):
    floor = ResourceSpec("app", cpu_request="25m", memory_request="32Mi")
    client = FakeWorkloadClient([snap(pending())], resources=floor)

    action, note = Remediator(client).plan(Action.REDUCE_RESOURCE_FOOTPRINT, ref, "web")

    assert action == Action.FORCE_RESCHEDULE
    assert "already at floor" in note


def test_plan_passes_other_actions_through(ref):
    client = FakeWorkloadClient([snap(pending())])

    assert Remediator(client).plan(Action.EXPOSE_EXTERNALLY, ref, None) == (Action.EXPOSE_EXTERNALLY, "")
    assert client.calls == []


def test_reduce_needs_a_deployment(ref):
    client = FakeWorkloadClient([snap(pending())])

    with pytest.raises(TransientCallError):
        Remediator(client).apply(Action.REDUCE_RESOURCE_FOOTPRINT, ref, None)


def test_expose_externally_patches_cluster_ip_service(ref):
    client = FakeWorkloadClient([snap(running())])

    outcome, detail = Remediator(client).expose_externally(ref)

    assert outcome == "applied"
    assert detail == "service web: ClusterIP -> NodePort"
    assert client.service_type == "NodePort"


@pytest.mark.parametrize("service_type", ["NodePort", "LoadBalancer"])
def test_expose_externally_skips_already_exposed(ref, service_type):
    client = FakeWorkloadClient([snap(running())], service_type=service_type)

    outcome, _ = Remediator(client).expose_externally(ref)

    assert outcome == "skipped"
    assert client.count("patch_service_type") == 0


def test_expose_externally_uses_explicit_service():
    client = FakeWorkloadClient([snap(running())], service=None)
    ref = WorkloadRef(namespace="dev", selector="app=web", service="web-nodeport")

    _, detail = Remediator(client).expose_externally(ref)

    assert "web-nodeport" in detail


def test_expose_externally_without_service(ref):
    client = FakeWorkloadClient([snap(running())], service=None)

    with pytest.raises(TransientCallError):
        Remediator(client).expose_externally(ref)


def test_publisher_errors_propagate_as_transient(ref):
    client = FakeWorkloadClient([snap(pending(reason="ErrImagePull"))])

    def broken(image):
        raise TransientCallError("docker build failed")

    with pytest.raises(TransientCallError):
        Remediator(client, image_publisher=broken).rebuild_and_reload(ref, "web")
    assert client.count("delete_pods") == 0


def test_dry_run_expose_does_not_patch(ref):
    client = FakeWorkloadClient([snap(running())])

    outcome, _ = Remediator(client, dry_run=True).expose_externally(ref)

    assert outcome == "dry-run"
    assert client.service_type == "ClusterIP"
