"""Volume provisioning: types, waiter, manifest fetching, compute client, workflow."""

from imagevol.provisioning.client import ComputeClient, RestComputeClient
from imagevol.provisioning.manifest import fetch_manifest, parse_manifest
from imagevol.provisioning.types import Acceptor, ConversionTask, ImageManifest, Volume, WaiterConfig
from imagevol.provisioning.volume import VolumeDriver, import_task_waiter
from imagevol.provisioning.waiter import wait, wait_until

__all__ = [
    "Acceptor",
    "ConversionTask",
    "ImageManifest",
    "Volume",
    "WaiterConfig",
    "wait",
    "wait_until",
    "fetch_manifest",
    "parse_manifest",
    "ComputeClient",
    "RestComputeClient",
    "VolumeDriver",
    "import_task_waiter",
]
