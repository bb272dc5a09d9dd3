import os
import sys
import threading

import pytest

# Ensure project root is importable when the package is not installed
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from workload_reconciler.models import (  # noqa: E402
    PodObservation,
    PodPhase,
    ResourceSpec,
    WorkloadRef,
    WorkloadSnapshot,
)

STARVED = "0/1 nodes are available: 1 Insufficient memory."


def running(name="web-1", ready=True):
    return PodObservation(name=name, phase=PodPhase.RUNNING, ready=ready)


def pending(name="web-1", reason=None):
    return PodObservation(name=name, phase=PodPhase.PENDING, reason=reason)


def snap(*pods, desired=1, deployment="web"):
    return WorkloadSnapshot(pods=list(pods), deployment=deployment, desired_replicas=desired)


class FakeWorkloadClient:
    """
    In-memory stand-in for WorkloadClient.

    ``snapshots`` are returned one per poll; the last one repeats. An
    exception in the list is raised instead of returned. ``failures`` maps a
    method name to an exception raised on its next call.
    """

    def __init__(self, snapshots, resources=None, image="web:latest", service="web", service_type="ClusterIP"):
        self.snapshots = list(snapshots)
        self.resources = resources or ResourceSpec(
            container="app",
            cpu_request="100m",
            memory_request="256Mi",
            cpu_limit="200m",
            memory_limit="512Mi",
        )
        self.image = image
        self.service = service
        self.service_type = service_type
        self.failures = {}
        self.calls = []
        self.pods = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures.pop(name)

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    def snapshot(self, ref):
        self._call("snapshot")
        item = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(item, Exception):
            raise item
        self.pods = list(item.pods)
        return item

    def list_pods(self, namespace, selector):
        self._call("list_pods")
        return list(self.pods)

    def delete_pods(self, namespace, selector, predicate):
        self._call("delete_pods")
        return [p.name for p in self.pods if predicate(p)]

    def get_resource_spec(self, namespace, name):
        self._call("get_resource_spec")
        return self.resources

    def patch_resources(self, namespace, name, spec, original=None, timestamp=None):
        self._call("patch_resources", spec)
        self.resources = spec

    def get_image(self, namespace, name):
        self._call("get_image")
        return self.image

    def resolve_service(self, ref):
        self._call("resolve_service")
        return ref.service or self.service

    def get_service_type(self, namespace, name):
        self._call("get_service_type")
        return self.service_type

    def patch_service_type(self, namespace, name, service_type):
        self._call("patch_service_type", service_type)
        self.service_type = service_type


class RecordingEvent(threading.Event):
    """Stop event whose wait() returns immediately and remembers the timeout."""

    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return self.is_set()


@pytest.fixture
def ref():
    return WorkloadRef(namespace="dev", selector="app=web")


@pytest.fixture
def stop_event():
    return RecordingEvent()
