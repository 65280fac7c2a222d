"""Compute API client: zones, import tasks and volumes.

``ComputeClient`` is the interface the workflow depends on.
``RestComputeClient`` talks JSON over HTTP to a compute API that wraps
requests in a versioned envelope ``{"version": ..., "data": ...}``.
"""

import json
import logging
import time
from typing import Protocol

import httpx

from imagevol.errors import ComputeAPIError
from imagevol.provisioning.types import ConversionTask, TaskState, Volume, VolumeState
from imagevol.provisioning.waiter import wait_until

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://127.0.0.1:8773"
API_VERSION = "2016-11-15"

DRY_RUN_ZONE = "dry-run-zone"
DRY_RUN_TASK_ID = "dry-run-task"
DRY_RUN_VOLUME_ID = "dry-run-volume"


class ComputeClient(Protocol):
    def describe_availability_zones(self) -> list[str]:
        """Names of the zones whose state is "available", in API order."""

    def import_volume(self, zone: str, manifest_url: str, file_format: str, size_gb: int) -> ConversionTask:
        """Submit an import-volume task. The returned task may lack an id."""

    def describe_conversion_tasks(self, task_ids: list[str]) -> dict:
        """Raw response: ``{"conversion_tasks": [...]}``."""

    def describe_volumes(self, volume_ids: list[str]) -> dict:
        """Raw response: ``{"volumes": [...]}``."""

    def wait_until_volume_available(self, volume_id: str) -> None:
        """Block until the volume is available or the client gives up."""


class RestComputeClient:
    """ComputeClient over the compute REST API.

    Safe to share between threads as long as the underlying ``httpx.Client``
    is; it keeps no per-call state.
    """

    def __init__(
        self,
        api_key,
        api_url=DEFAULT_API_URL,
        region=None,
        dry_run=False,
        timeout=60,
        volume_wait_delay=15,
        volume_wait_attempts=40,
        http=None,
        sleep=time.sleep,
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.region = region
        self.dry_run = dry_run
        self.volume_wait_delay = volume_wait_delay
        self.volume_wait_attempts = volume_wait_attempts
        self._sleep = sleep
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=timeout)

    def close(self):
        if self._owns_http:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── Transport ──────────────────────────────────────────────────

    def _api_request(self, path, data):
        """POST *data* in the versioned envelope and return the response ``data`` dict.

        Returns ``None`` in dry-run mode. A live response whose ``data`` is
        null comes back as ``{}``.

        Raises:
            ComputeAPIError: transport failure, non-2xx status, or a body
                that is not a JSON object.
        """
        url = f"{self.api_url}{path}"
        payload = {"version": API_VERSION, "data": data}
        if self.region:
            payload["region"] = self.region

        if self.dry_run:
            logger.info(f"[dry-run] POST {url}")
            logger.info(f"[dry-run] payload: {json.dumps(payload, indent=2)}")
            return None

        headers = {"X-API-Key": self.api_key, "Content-Type": "application/json"}
        try:
            resp = self._http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ComputeAPIError(f"POST {path}: {e}") from e
        if resp.is_error:
            raise ComputeAPIError(f"POST {path} returned {resp.status_code}: {resp.text.strip()}", status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError as e:
            raise ComputeAPIError(f"POST {path} returned invalid JSON: {e}", status_code=resp.status_code) from e

        if not isinstance(body, dict):
            raise ComputeAPIError(f"POST {path} returned unexpected JSON: {type(body).__name__}", status_code=resp.status_code)
        result = body.get("data", body)
        if result is None:
            return {}
        if not isinstance(result, dict):
            raise ComputeAPIError(f"POST {path} returned unexpected data: {type(result).__name__}", status_code=resp.status_code)
        return result

    # ── Operations ─────────────────────────────────────────────────

    def describe_availability_zones(self):
        result = self._api_request("/api/v1/availability-zones/list", {"filters": {"state": ["available"]}})
        if self.dry_run:
            return [DRY_RUN_ZONE]
        zones = result.get("availability_zones") or []
        return [z["zone_name"] for z in zones if z.get("zone_name") and z.get("state", "available") == "available"]

    def import_volume(self, zone, manifest_url, file_format, size_gb):
        data = {
            "availability_zone": zone,
            "image": {
                "import_manifest_url": manifest_url,
                "format": file_format,
                "bytes": size_gb,
            },
            "volume": {"size": size_gb},
        }
        result = self._api_request("/api/v1/volumes/import", data)
        if self.dry_run:
            return ConversionTask(id=DRY_RUN_TASK_ID, state=TaskState.ACTIVE)
        return ConversionTask.from_api(result.get("conversion_task") or {})

    def describe_conversion_tasks(self, task_ids):
        result = self._api_request("/api/v1/conversion-tasks/list", {"conversion_task_ids": list(task_ids)})
        if self.dry_run:
            return {
                "conversion_tasks": [
                    {
                        "conversion_task_id": task_id,
                        "state": TaskState.COMPLETED,
                        "import_volume": {"volume": {"id": DRY_RUN_VOLUME_ID}},
                    }
                    for task_id in task_ids
                ]
            }
        return result

    def describe_volumes(self, volume_ids):
        result = self._api_request("/api/v1/volumes/list", {"volume_ids": list(volume_ids)})
        if self.dry_run:
            return {"volumes": [{"volume_id": v, "state": VolumeState.AVAILABLE} for v in volume_ids]}
        return result

    def wait_until_volume_available(self, volume_id):
        def volumes(response):
            return [Volume.from_api(v) for v in response.get("volumes") or []]

        def available(response):
            found = volumes(response)
            return bool(found) and all(v.state == VolumeState.AVAILABLE for v in found)

        def failed(response):
            for v in volumes(response):
                if v.state in (VolumeState.ERROR, VolumeState.DELETED):
                    return v.state
            return None

        wait_until(
            lambda: self.describe_volumes([volume_id]),
            available,
            failed,
            operation="DescribeVolumes",
            delay=self.volume_wait_delay,
            max_attempts=self.volume_wait_attempts,
            sleep=self._sleep,
            resource_id=volume_id,
        )
