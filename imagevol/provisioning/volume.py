"""Volume provisioning: turn a machine-image manifest URL into an available volume.

Phases run strictly in order and none is retried here; only the waiter
retries inside the two wait phases:

    1. pick the first available zone
    2. fetch and decode the manifest
    3. submit the import task
    4. wait for the task to complete
    5. resolve the volume id from the task and wait for the volume
"""

import logging
import time

from imagevol.errors import (
    ComputeAPIError,
    DiscoveryError,
    InvariantError,
    ProvisioningError,
    SubmissionError,
    WaitError,
)
from imagevol.provisioning.client import RestComputeClient
from imagevol.provisioning.manifest import fetch_manifest
from imagevol.provisioning.types import FAILURE, PATH_ALL, PATH_ANY, SUCCESS, Acceptor, ConversionTask, TaskState, WaiterConfig
from imagevol.provisioning.waiter import wait

PHASE_ZONES = "listing availability zones"
PHASE_MANIFEST = "fetching import volume manifest"
PHASE_SUBMIT = "creating import volume task"
PHASE_TASK_WAIT = "waiting for volume to be imported"
PHASE_RESOLVE = "resolving volume from conversion task"
PHASE_VOLUME_WAIT = "waiting for volume to be available"

TASK_STATE_PATH = "conversion_tasks[].state"


def import_task_waiter(delay=15, max_attempts=40):
    """Waiter config for an import task: done when every task is completed,
    failed as soon as any task is cancelled or cancelling."""
    return WaiterConfig(
        operation="DescribeConversionTasks",
        delay=delay,
        max_attempts=max_attempts,
        acceptors=(
            Acceptor(SUCCESS, PATH_ALL, TASK_STATE_PATH, TaskState.COMPLETED),
            Acceptor(FAILURE, PATH_ANY, TASK_STATE_PATH, TaskState.CANCELLED),
            Acceptor(FAILURE, PATH_ANY, TASK_STATE_PATH, TaskState.CANCELLING),
        ),
    )


class VolumeDriver:
    """Creates a volume from a machine image in the first available zone.

    Holds no per-call state, so one driver can serve concurrent ``create()``
    calls for different manifests.

    Args:
        client: a ``ComputeClient``.
        logger: logger for progress and timing; defaults to this module's.
        fetcher: callable ``url -> ImageManifest``.
        task_wait_delay: seconds between import task polls.
        task_wait_attempts: import task poll budget.
        sleep: passed to the waiter.
        clock: monotonic time source for the logged durations.
    """

    def __init__(
        self,
        client,
        logger=None,
        fetcher=fetch_manifest,
        task_wait_delay=15,
        task_wait_attempts=40,
        sleep=time.sleep,
        clock=time.monotonic,
    ):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        self.fetcher = fetcher
        self.task_wait_delay = task_wait_delay
        self.task_wait_attempts = task_wait_attempts
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config, api_key, dry_run=False, logger=None):
        """Build a driver and its REST client from a loaded config dict."""
        compute = config["compute"]
        waiters = config["waiters"]
        client = RestComputeClient(
            api_key=api_key,
            api_url=compute["api_url"],
            region=compute.get("region"),
            dry_run=dry_run,
            timeout=compute.get("timeout", 60),
            volume_wait_delay=waiters["volume_available"]["delay"],
            volume_wait_attempts=waiters["volume_available"]["max_attempts"],
        )
        return cls(
            client,
            logger=logger,
            task_wait_delay=waiters["import_task"]["delay"],
            task_wait_attempts=waiters["import_task"]["max_attempts"],
        )

    def create(self, manifest_url):
        """Import the image described by *manifest_url* and return the volume id.

        Raises:
            ProvisioningError: any phase failed; ``phase`` names which one.
        """
        start = self._clock()
        try:
            return self._create(manifest_url)
        finally:
            self.logger.info(f"completed create() in {(self._clock() - start) / 60:.2f} minutes")

    def _create(self, manifest_url):
        zone = self._locate_zone()
        manifest = self._fetch_manifest(manifest_url)
        task_id = self._submit_import(zone, manifest_url, manifest)
        self._wait_for_task(task_id)
        volume_id = self._resolve_volume(task_id)
        self._wait_for_volume(volume_id)
        return volume_id

    # ── Phases ─────────────────────────────────────────────────────

    def _locate_zone(self):
        try:
            zones = self.client.describe_availability_zones()
        except ComputeAPIError as e:
            raise DiscoveryError(str(e), phase=PHASE_ZONES) from e

        if not zones:
            region = getattr(self.client, "region", None) or "default region"
            raise DiscoveryError(f"no available availability zones in {region}", phase=PHASE_ZONES)
        self.logger.info(f"Using availability zone {zones[0]}")
        return zones[0]

    def _fetch_manifest(self, manifest_url):
        try:
            return self.fetcher(manifest_url)
        except ProvisioningError as e:
            e.phase = PHASE_MANIFEST
            raise

    def _submit_import(self, zone, manifest_url, manifest):
        try:
            task = self.client.import_volume(zone, manifest_url, manifest.file_format, manifest.volume_size_gb)
        except ComputeAPIError as e:
            raise SubmissionError(str(e), phase=PHASE_SUBMIT) from e

        if not task.id:
            raise InvariantError("conversion task ID nil", phase=PHASE_SUBMIT)
        return task.id

    def _wait_for_task(self, task_id):
        self.logger.info(f"waiting on import task {task_id}")
        start = self._clock()
        try:
            wait(
                lambda: self.client.describe_conversion_tasks([task_id]),
                import_task_waiter(self.task_wait_delay, self.task_wait_attempts),
                sleep=self._sleep,
                clock=self._clock,
                resource_id=task_id,
            )
        except WaitError as e:
            e.phase = PHASE_TASK_WAIT
            raise
        finally:
            self.logger.info(f"waited on import task {task_id} for {(self._clock() - start) / 60:.2f} minutes")

    def _resolve_volume(self, task_id):
        try:
            response = self.client.describe_conversion_tasks([task_id])
        except ComputeAPIError as e:
            raise ProvisioningError(f"fetching volume ID from conversion task {task_id}: {e}", phase=PHASE_RESOLVE) from e

        tasks = response.get("conversion_tasks") or []
        if not tasks:
            raise InvariantError(f"conversion task {task_id} missing from response", phase=PHASE_RESOLVE)
        task = ConversionTask.from_api(tasks[0])
        if not task.volume_id:
            raise InvariantError("volume ID nil", phase=PHASE_RESOLVE)
        return task.volume_id

    def _wait_for_volume(self, volume_id):
        self.logger.info(f"waiting for volume to be available: {volume_id}")
        start = self._clock()
        try:
            self.client.wait_until_volume_available(volume_id)
        except WaitError as e:
            e.phase = PHASE_VOLUME_WAIT
            raise
        except ComputeAPIError as e:
            raise ProvisioningError(str(e), phase=PHASE_VOLUME_WAIT) from e
        finally:
            self.logger.info(f"waited on volume {volume_id} for {self._clock() - start:.1f} seconds")
