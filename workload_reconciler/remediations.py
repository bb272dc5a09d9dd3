"""Remediation actions applied by the reconciler."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .config import EXTERNAL_SERVICE_TYPE, EXTERNAL_SERVICE_TYPES
from .errors import TransientCallError
from .models import Action, PodObservation, PodPhase, WorkloadRef
from .utils import scale_resource_spec

logger = logging.getLogger(__name__)

# (outcome, detail); outcome is one of applied, skipped, dry-run
Outcome = Tuple[str, str]

ImagePublisher = Callable[[str], None]


def _not_running(pod: PodObservation) -> bool:
    return pod.phase != PodPhase.RUNNING and not pod.terminating


class Remediator:
    """Applies the built-in remediation actions to a workload."""

    def __init__(
        self,
        client,
        image_publisher: Optional[ImagePublisher] = None,
        dry_run: bool = False,
    ):
        """
        Initialize the remediator.

        Args:
            client: WorkloadClient (or anything with the same methods)
            image_publisher: Callable that rebuilds an image and makes it
                pullable by the cluster's nodes
            dry_run: If True, report what would be done without doing it
        """
        self.client = client
        self.image_publisher = image_publisher
        self.dry_run = dry_run
        self._handlers = {
            Action.REDUCE_RESOURCE_FOOTPRINT: self.reduce_resource_footprint,
            Action.FORCE_RESCHEDULE: self.force_reschedule,
            Action.REBUILD_AND_RELOAD: self.rebuild_and_reload,
            Action.EXPOSE_EXTERNALLY: self.expose_externally,
        }

    def plan(self, action: Action, ref: WorkloadRef, deployment: Optional[str]) -> Tuple[Action, str]:
        """
        Decide which action will actually run.

        ReduceResourceFootprint turns into ForceReschedule once the resources
        are already at their floor, so identical patches are never repeated.

        Returns:
            (action to apply, note explaining a substitution or "")
        """
        if action != Action.REDUCE_RESOURCE_FOOTPRINT:
            return action, ""

        name = self._require_deployment(deployment, action)
        current = self.client.get_resource_spec(ref.namespace, name)
        if scale_resource_spec(current) == current:
            logger.info(f"Resources of {ref.namespace}/{name} already at floor, rescheduling instead")
            return Action.FORCE_RESCHEDULE, f"{action.value} skipped: resources already at floor"
        return action, ""

    def apply(self, action: Action, ref: WorkloadRef, deployment: Optional[str]) -> Outcome:
        """
        Run an action.

        Raises:
            TransientCallError: If the action could not be carried out
            BackendUnavailable: If the API is unreachable
        """
        return self._handlers[action](ref, deployment)

    def _require_deployment(self, deployment: Optional[str], action: Action) -> str:
        if not deployment:
            raise TransientCallError(f"{action.value} needs a deployment, none found")
        return deployment

    def reduce_resource_footprint(self, ref: WorkloadRef, deployment: Optional[str]) -> Outcome:
        name = self._require_deployment(deployment, Action.REDUCE_RESOURCE_FOOTPRINT)
        current = self.client.get_resource_spec(ref.namespace, name)
        reduced = scale_resource_spec(current)

        if reduced == current:
            return "skipped", "resources already at floor"

        detail = f"{current.to_resources()} -> {reduced.to_resources()}"
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would reduce resources of {ref.namespace}/{name}: {detail}")
            return "dry-run", detail

        self.client.patch_resources(
            ref.namespace,
            name,
            reduced,
            original=current,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        return "applied", detail

    def force_reschedule(self, ref: WorkloadRef, deployment: Optional[str] = None) -> Outcome:
        """Delete every non-Running pod so the deployment recreates it."""
        if self.dry_run:
            pods = [p.name for p in self.client.list_pods(ref.namespace, ref.selector) if _not_running(p)]
            if not pods:
                return "skipped", "no non-running pods"
            logger.info(f"[DRY-RUN] Would delete pods {', '.join(pods)}")
            return "dry-run", f"would delete {', '.join(pods)}"

        deleted = self.client.delete_pods(ref.namespace, ref.selector, _not_running)
        if not deleted:
            return "skipped", "no non-running pods"
        return "applied", f"deleted {', '.join(deleted)}"

    def rebuild_and_reload(self, ref: WorkloadRef, deployment: Optional[str]) -> Outcome:
        name = self._require_deployment(deployment, Action.REBUILD_AND_RELOAD)
        if self.image_publisher is None:
            raise TransientCallError("RebuildAndReload needs an image publisher, none configured")

        image = self.client.get_image(ref.namespace, name)
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would rebuild and publish {image}")
            return "dry-run", f"would rebuild {image}"

        logger.info(f"Rebuilding and publishing {image}")
        self.image_publisher(image)

        _, detail = self.force_reschedule(ref)
        return "applied", f"rebuilt {image}; {detail}"

    def expose_externally(self, ref: WorkloadRef, deployment: Optional[str] = None) -> Outcome:
        service = self.client.resolve_service(ref)
        if not service:
            raise TransientCallError(f"No service found for {ref}")

        current_type = self.client.get_service_type(ref.namespace, service)
        if current_type in EXTERNAL_SERVICE_TYPES:
            return "skipped", f"service {service} already {current_type}"

        detail = f"service {service}: {current_type} -> {EXTERNAL_SERVICE_TYPE}"
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would patch {detail}")
            return "dry-run", detail

        self.client.patch_service_type(ref.namespace, service, EXTERNAL_SERVICE_TYPE)
        return "applied", detail
