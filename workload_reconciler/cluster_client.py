"""Client for the parts of the Kubernetes API the reconciler needs."""

import functools
import logging
from typing import Callable, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .config import (
    API_TIMEOUT_SECONDS,
    DELETE_GRACE_PERIOD_SECONDS,
    ORIGINAL_RESOURCES_ANNOTATION,
    LAST_REMEDIATED_ANNOTATION,
)
from .errors import BackendUnavailable, TransientCallError
from .models import (
    PodObservation,
    PodPhase,
    ResourceSpec,
    WorkloadRef,
    WorkloadSnapshot,
)
from .utils import parse_selector_terms, selector_matches, serialize_resources

logger = logging.getLogger(__name__)


def build_api_client(
    in_cluster: bool = False,
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
) -> client.ApiClient:
    """
    Create an explicit API client instead of mutating the global default
    configuration.

    Args:
        in_cluster: Use the service account mounted into the pod
        kubeconfig: Path to a kubeconfig file (default location if None)
        context: kubeconfig context to use (current context if None)

    Raises:
        kubernetes.config.ConfigException: If no configuration can be loaded
    """
    if in_cluster:
        configuration = client.Configuration()
        config.load_incluster_config(client_configuration=configuration)
        logger.info("Loaded in-cluster configuration")
        return client.ApiClient(configuration)

    api_client = config.new_client_from_config(config_file=kubeconfig, context=context)
    logger.info(
        f"Loaded kubeconfig from {kubeconfig or 'default location'}"
        f" (context: {context or 'current'})"
    )
    return api_client


# Failures that mean the API server could not be reached at all
_CONNECT_ERRORS = (
    urllib3.exceptions.NewConnectionError,
    urllib3.exceptions.ConnectTimeoutError,
    urllib3.exceptions.SSLError,
    ConnectionRefusedError,
)


def _is_unreachable(error: Exception) -> bool:
    if isinstance(error, urllib3.exceptions.MaxRetryError):
        return isinstance(error.reason, _CONNECT_ERRORS)
    return isinstance(error, _CONNECT_ERRORS)


def _translate_errors(func):
    """Map kubernetes/urllib3 failures onto the reconciler's error taxonomy."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ApiException as e:
            # The client reports SSL failures as status 0
            if not e.status:
                raise BackendUnavailable(f"Kubernetes API unreachable: {e.reason}") from e
            raise TransientCallError(
                f"{func.__name__} failed: {e.status} {e.reason}", status=e.status
            ) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            if _is_unreachable(e):
                raise BackendUnavailable(f"Kubernetes API unreachable: {e}") from e
            # Read timeouts and dropped connections on a reachable server
            raise TransientCallError(f"{func.__name__} failed: {e}") from e
    return wrapper


def _pod_reason(pod) -> Optional[str]:
    """
    Pick the most telling reason for a pod not being healthy.

    Image pull failures come from container waiting states, scheduling
    failures from the PodScheduled condition.
    """
    status = pod.status
    if status is None:
        return None

    for container_status in (status.container_statuses or []) + (status.init_container_statuses or []):
        waiting = container_status.state.waiting if container_status.state else None
        if waiting and waiting.reason:
            if waiting.message:
                return f"{waiting.reason}: {waiting.message}"
            return waiting.reason

    for condition in status.conditions or []:
        if condition.type == "PodScheduled" and condition.status == "False":
            return condition.message or condition.reason

    return None


def _pod_ready(pod) -> bool:
    if pod.status is None:
        return False
    for condition in pod.status.conditions or []:
        if condition.type == "Ready":
            return condition.status == "True"
    return False


class WorkloadClient:
    """Reads and mutates a workload's pods, deployment and service."""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        """
        Initialize the client.

        Args:
            api_client: Explicit API client (see build_api_client)
        """
        self.v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)

    # Pods

    @_translate_errors
    def list_pods(self, namespace: str, selector: str) -> List[PodObservation]:
        """
        List the pods matching a selector as typed observations.

        Args:
            namespace: Pod namespace
            selector: Label selector string

        Returns:
            List of PodObservation
        """
        pods = self.v1.list_namespaced_pod(
            namespace=namespace,
            label_selector=selector,
            timeout_seconds=API_TIMEOUT_SECONDS,
        )

        observations = []
        for pod in pods.items:
            phase = PodPhase.parse(pod.status.phase if pod.status else None)
            reason = _pod_reason(pod)
            if phase == PodPhase.PENDING and not reason:
                reason = self._scheduling_message_from_events(namespace, pod.metadata.name)
            observations.append(PodObservation(
                name=pod.metadata.name,
                phase=phase,
                ready=_pod_ready(pod),
                reason=reason,
                terminating=pod.metadata.deletion_timestamp is not None,
            ))
        return observations

    def _scheduling_message_from_events(self, namespace: str, pod_name: str) -> Optional[str]:
        """Get the latest FailedScheduling message for a pod, if any."""
        field_selector = f"involvedObject.name={pod_name},involvedObject.namespace={namespace}"
        try:
            events = self.v1.list_namespaced_event(
                namespace=namespace,
                field_selector=field_selector,
                timeout_seconds=API_TIMEOUT_SECONDS,
            )
        except ApiException as e:
            logger.error(f"Error fetching events for pod {namespace}/{pod_name}: {e.status} {e.reason}")
            return None

        message = None
        for event in events.items:
            if event.reason == "FailedScheduling":
                message = event.message
        return message

    @_translate_errors
    def delete_pods(
        self,
        namespace: str,
        selector: str,
        predicate: Callable[[PodObservation], bool],
    ) -> List[str]:
        """
        Delete the pods matching a selector for which ``predicate`` holds.

        Returns:
            Names of the deleted pods
        """
        deleted = []
        for pod in self.list_pods(namespace, selector):
            if not predicate(pod):
                continue

            try:
                self.v1.delete_namespaced_pod(
                    name=pod.name,
                    namespace=namespace,
                    grace_period_seconds=DELETE_GRACE_PERIOD_SECONDS,
                )
                logger.info(f"Deleted pod {namespace}/{pod.name}")
                deleted.append(pod.name)
            except ApiException as e:
                if e.status != 404:  # Ignore if already deleted
                    raise
        return deleted

    # Deployment

    @_translate_errors
    def find_deployment(self, namespace: str, selector: str) -> Optional[str]:
        """Find the deployment whose pod selector targets the workload's pods."""
        terms = parse_selector_terms(selector)
        deployments = self.apps_v1.list_namespaced_deployment(
            namespace=namespace,
            timeout_seconds=API_TIMEOUT_SECONDS,
        )
        matches = [
            d for d in deployments.items
            if d.spec.selector and selector_matches(d.spec.selector.match_labels, terms)
        ]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"Selector {selector} matches {len(matches)} deployments "
                f"in {namespace}, using {matches[0].metadata.name}"
            )
        return matches[0].metadata.name

    @_translate_errors
    def get_desired_replicas(self, namespace: str, name: str) -> Optional[int]:
        """
        Get the desired replica count of a deployment.

        Returns:
            Replica count, or None if the deployment does not exist
        """
        try:
            deployment = self.apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        replicas = deployment.spec.replicas
        # Kubernetes defaults an unset replica count to 1
        return 1 if replicas is None else replicas

    @_translate_errors
    def get_resource_spec(self, namespace: str, name: str) -> ResourceSpec:
        """Read requests and limits of the deployment's first container."""
        deployment = self.apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        container = deployment.spec.template.spec.containers[0]
        resources = container.resources
        requests = (resources.requests if resources else None) or {}
        limits = (resources.limits if resources else None) or {}
        return ResourceSpec(
            container=container.name,
            cpu_request=requests.get("cpu"),
            memory_request=requests.get("memory"),
            cpu_limit=limits.get("cpu"),
            memory_limit=limits.get("memory"),
        )

    @_translate_errors
    def patch_resources(
        self,
        namespace: str,
        name: str,
        spec: ResourceSpec,
        original: Optional[ResourceSpec] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        """
        Patch the first container's resources with a strategic merge patch.

        Args:
            namespace: Deployment namespace
            name: Deployment name
            spec: New resources
            original: Resources before the first reduction, stored in an
                annotation unless one is already present
            timestamp: Value for the last-remediated annotation
        """
        annotations = {}
        if timestamp:
            annotations[LAST_REMEDIATED_ANNOTATION] = timestamp
        if original is not None:
            deployment = self.apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
            existing = deployment.metadata.annotations or {}
            if ORIGINAL_RESOURCES_ANNOTATION not in existing:
                annotations[ORIGINAL_RESOURCES_ANNOTATION] = serialize_resources(original.to_resources())

        body = {
            "spec": {
                "template": {
                    "spec": {
                        "containers": [
                            {"name": spec.container, "resources": spec.to_resources()}
                        ]
                    }
                }
            }
        }
        if annotations:
            body["metadata"] = {"annotations": annotations}

        self.apps_v1.patch_namespaced_deployment(name=name, namespace=namespace, body=body)
        logger.info(f"Patched resources of deployment {namespace}/{name}: {spec.to_resources()}")

    @_translate_errors
    def get_image(self, namespace: str, name: str) -> str:
        """Get the image of the deployment's first container."""
        deployment = self.apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        return deployment.spec.template.spec.containers[0].image

    # Service

    @_translate_errors
    def find_service(self, namespace: str, selector: str) -> Optional[str]:
        """Find the first service whose selector targets the workload's pods."""
        terms = parse_selector_terms(selector)
        services = self.v1.list_namespaced_service(
            namespace=namespace,
            timeout_seconds=API_TIMEOUT_SECONDS,
        )
        for service in services.items:
            if selector_matches(service.spec.selector, terms):
                return service.metadata.name
        return None

    @_translate_errors
    def get_service_type(self, namespace: str, name: str) -> str:
        service = self.v1.read_namespaced_service(name=name, namespace=namespace)
        return service.spec.type or "ClusterIP"

    @_translate_errors
    def patch_service_type(self, namespace: str, name: str, service_type: str) -> None:
        body = {"spec": {"type": service_type}}

        self.v1.patch_namespaced_service(name=name, namespace=namespace, body=body)
        logger.info(f"Patched service {namespace}/{name} to type {service_type}")

    # Aggregate

    def resolve_deployment(self, ref: WorkloadRef) -> Optional[str]:
        return ref.deployment or self.find_deployment(ref.namespace, ref.selector)

    def resolve_service(self, ref: WorkloadRef) -> Optional[str]:
        return ref.service or self.find_service(ref.namespace, ref.selector)

    def snapshot(self, ref: WorkloadRef) -> WorkloadSnapshot:
        """
        Observe the workload once.

        Pods come from a single list call so they are consistent with each
        other; the deployment is read right after.
        """
        pods = self.list_pods(ref.namespace, ref.selector)
        deployment = self.resolve_deployment(ref)
        desired = None
        if deployment:
            desired = self.get_desired_replicas(ref.namespace, deployment)
            if desired is None:
                deployment = None
        return WorkloadSnapshot(pods=pods, deployment=deployment, desired_replicas=desired)
