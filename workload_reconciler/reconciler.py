"""Reconciliation loop: poll, classify, remediate, sleep."""

import logging
import threading
import time
from typing import List, Optional

from .classifier import classify
from .config import DEFAULT_MAX_ATTEMPTS, DEFAULT_POLL_INTERVAL_SECONDS
from .errors import FatalReconcilerError, TransientCallError, WorkloadNotFound
from .models import (
    Classification,
    FinalState,
    ReconciliationResult,
    RemediationRecord,
    WorkloadRef,
    WorkloadSnapshot,
    snapshot_as_dict,
)
from .policy import Policy
from .remediations import ImagePublisher, Remediator

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Drives a workload towards a healthy state with a bounded number of
    attempts.

    Single threaded and synchronous. The cluster keeps changing on its own
    between polls, so every attempt starts from a fresh observation rather
    than from what the previous action was expected to do.
    """

    def __init__(
        self,
        client,
        image_publisher: Optional[ImagePublisher] = None,
        dry_run: bool = False,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            client: WorkloadClient used for every cluster call
            image_publisher: Collaborator for RebuildAndReload
            dry_run: If True, don't make actual changes
            stop_event: Set from another thread to cancel a run
        """
        self.client = client
        self.dry_run = dry_run
        self.remediator = Remediator(client, image_publisher=image_publisher, dry_run=dry_run)
        self._stop_event = stop_event or threading.Event()

    def stop(self) -> None:
        """Cancel the current run at its next sleep."""
        self._stop_event.set()

    def reconcile(
        self,
        ref: WorkloadRef,
        policy: Policy,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        deadline: Optional[float] = None,
    ) -> ReconciliationResult:
        """
        Reconcile a workload.

        Args:
            ref: Workload to reconcile
            policy: Rules mapping classifications to actions
            max_attempts: Upper bound on polls
            poll_interval: Seconds to sleep between attempts
            deadline: Optional wall-clock budget in seconds for the whole run

        Returns:
            ReconciliationResult with the final state and remediation log

        Raises:
            BackendUnavailable: If the Kubernetes API cannot be reached
            WorkloadNotFound: If the first poll finds no pods and no deployment
        """
        if not isinstance(max_attempts, int) or max_attempts < 1:
            raise ValueError(f"max_attempts must be a positive integer, got {max_attempts!r}")
        if poll_interval < 0:
            raise ValueError(f"poll_interval must be >= 0, got {poll_interval!r}")

        logger.info(
            f"Reconciling {ref} (selector {ref.selector}) with policy {policy.name}: "
            f"max {max_attempts} attempt(s), poll interval {poll_interval}s"
        )

        log: List[RemediationRecord] = []
        errors: List[str] = []
        started = time.monotonic()
        polled = False
        last_record: Optional[RemediationRecord] = None
        attempt = 0

        try:
            for attempt in range(1, max_attempts + 1):
                snapshot = self._poll(ref, attempt, errors)

                if snapshot is not None:
                    state = classify(snapshot)
                    logger.info(
                        f"Attempt {attempt}/{max_attempts}: {ref} is {state.value} "
                        f"({len(snapshot.active_pods)} pod(s), desired {snapshot.desired_replicas})"
                    )

                    if last_record is not None:
                        self._close_record(last_record, state)
                        last_record = None

                    if state == Classification.HEALTHY:
                        return ReconciliationResult(FinalState.HEALTHY, attempt, log, errors)

                    if state == Classification.FAILED:
                        if not polled and snapshot.deployment is None:
                            raise WorkloadNotFound(
                                f"No pods and no deployment found for {ref} (selector {ref.selector})"
                            )
                        logger.error(f"{ref} has no pods and none are being created")
                        return ReconciliationResult(FinalState.FAILED, attempt, log, errors)

                    polled = True
                    last_record = self._remediate(attempt, state, ref, snapshot, policy, log, errors)

                if attempt == max_attempts:
                    break
                if self._should_stop(started, deadline, poll_interval):
                    break
                if self._stop_event.wait(poll_interval):
                    logger.warning("Reconciliation cancelled")
                    break
        except FatalReconcilerError as e:
            e.attempts_used = attempt
            e.remediation_log = log
            e.errors = errors
            raise
        except KeyboardInterrupt:
            logger.info("Shutdown requested...")
            self._stop_event.set()

        logger.warning(f"Giving up on {ref} after {attempt} attempt(s)")
        return ReconciliationResult(FinalState.DEGRADED, attempt, log, errors)

    def _poll(self, ref: WorkloadRef, attempt: int, errors: List[str]) -> Optional[WorkloadSnapshot]:
        try:
            snapshot = self.client.snapshot(ref)
        except TransientCallError as e:
            logger.warning(f"Attempt {attempt}: poll failed: {e}")
            errors.append(f"attempt {attempt}: poll failed: {e}")
            return None
        logger.debug(f"Snapshot: {snapshot_as_dict(snapshot)}")
        return snapshot

    def _remediate(
        self,
        attempt: int,
        state: Classification,
        ref: WorkloadRef,
        snapshot: WorkloadSnapshot,
        policy: Policy,
        log: List[RemediationRecord],
        errors: List[str],
    ) -> Optional[RemediationRecord]:
        """
        Select and apply the remediation for ``state``.

        The record is appended before the action runs so an abort halfway
        still leaves an accurate log.
        """
        action = policy.select(state)
        if action is None:
            logger.info(f"No rule in policy {policy.name} for {state.value}, waiting")
            return None

        try:
            effective, note = self.remediator.plan(action, ref, snapshot.deployment)
        except TransientCallError as e:
            logger.error(f"Could not plan {action.value} for {ref}: {e}")
            errors.append(f"attempt {attempt}: {action.value}: {e}")
            record = RemediationRecord(
                attempt=attempt, action=action, state_before=state, outcome="failed", detail=str(e)
            )
            log.append(record)
            return record

        record = RemediationRecord(attempt=attempt, action=effective, state_before=state, detail=note)
        log.append(record)

        logger.info(f"{'[DRY-RUN] ' if self.dry_run else ''}Applying {effective.value} to {ref}")
        try:
            outcome, detail = self.remediator.apply(effective, ref, snapshot.deployment)
        except TransientCallError as e:
            logger.error(f"{effective.value} failed for {ref}: {e}")
            errors.append(f"attempt {attempt}: {effective.value}: {e}")
            record.outcome = "failed"
            record.detail = "; ".join(filter(None, [note, str(e)]))
            return record

        record.outcome = outcome
        record.detail = "; ".join(filter(None, [note, detail]))
        logger.info(f"{effective.value}: {record.outcome} ({record.detail})")
        return record

    def _close_record(self, record: RemediationRecord, state: Classification) -> None:
        record.state_after = state
        if record.outcome == "applied" and state == record.state_before:
            record.ineffective = True
            logger.warning(
                f"Remediation ineffective: {record.action.value} applied at attempt "
                f"{record.attempt} but workload is still {state.value}"
            )

    def _should_stop(self, started: float, deadline: Optional[float], poll_interval: float) -> bool:
        if self._stop_event.is_set():
            logger.warning("Reconciliation cancelled")
            return True
        if deadline is not None and time.monotonic() - started + poll_interval > deadline:
            logger.warning(f"Deadline of {deadline}s reached")
            return True
        return False


def reconcile(
    client,
    ref: WorkloadRef,
    policy: Policy,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    deadline: Optional[float] = None,
    image_publisher: Optional[ImagePublisher] = None,
    dry_run: bool = False,
) -> ReconciliationResult:
    """Run a single reconciliation with a throwaway Reconciler."""
    reconciler = Reconciler(client, image_publisher=image_publisher, dry_run=dry_run)
    return reconciler.reconcile(ref, policy, max_attempts, poll_interval, deadline)
