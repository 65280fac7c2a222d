"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys

import pytest

from imagevol.errors import ComputeAPIError
from imagevol.provisioning.types import ConversionTask

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))

MANIFEST_XML = """<?xml version="1.0" encoding="UTF-8"?>
<manifest>
  <version>2010-11-15</version>
  <file-format>{file_format}</file-format>
  <importer>
    <name>ec2-upload-disk-image</name>
    <version>1.0.0</version>
    <release>2010-11-15</release>
  </importer>
  <self-destruct-url>https://bucket.example.com/image.vmdk.manifest.xml?delete</self-destruct-url>
  <import>
    <size>1073741824</size>
    <volume-size>{size}</volume-size>
    <parts count="1">
      <part index="0">
        <byte-range end="1073741823" start="0"/>
        <key>image.vmdk.part0</key>
      </part>
    </parts>
  </import>
</manifest>
"""


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the imagevol CLI as a subprocess."""

    def _run(*args, env=None):
        result = subprocess.run(
            [sys.executable, "-m", "imagevol.imagevol", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env={**os.environ, **(env or {})},
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture
def manifest_xml():
    """Return a factory rendering an import-volume manifest document."""

    def _make(file_format="VMDK", size=4):
        return MANIFEST_XML.format(file_format=file_format, size=size)

    return _make


@pytest.fixture
def manifest_file(tmp_path, manifest_xml):
    """Write a VMDK / 4GB manifest to disk and return its path."""
    path = tmp_path / "image.vmdk.manifest.xml"
    path.write_text(manifest_xml())
    return str(path)


# ── Fake compute client ─────────────────────────────────────────────


class FakeComputeClient:
    """In-memory ComputeClient that records every call.

    ``task_states`` is consumed one entry per describe_conversion_tasks()
    call; once exhausted the last state repeats.
    """

    def __init__(
        self,
        zones=("us-east-1a",),
        task_id="import-1",
        task_states=("completed",),
        volume_id="vol-123",
        region="us-east-1",
    ):
        self.zones = list(zones)
        self.task_id = task_id
        self.task_states = list(task_states)
        self.volume_id = volume_id
        self.region = region
        self.calls = []
        self.zones_error = None
        self.import_error = None
        self.volume_wait_error = None

    def _record(self, name, *args):
        self.calls.append((name, *args))

    def call_names(self):
        return [c[0] for c in self.calls]

    def describe_availability_zones(self):
        self._record("describe_availability_zones")
        if self.zones_error:
            raise self.zones_error
        return list(self.zones)

    def import_volume(self, zone, manifest_url, file_format, size_gb):
        self._record("import_volume", zone, manifest_url, file_format, size_gb)
        if self.import_error:
            raise self.import_error
        return ConversionTask(id=self.task_id, state="active")

    def describe_conversion_tasks(self, task_ids):
        self._record("describe_conversion_tasks", list(task_ids))
        state = self.task_states.pop(0) if len(self.task_states) > 1 else self.task_states[0]
        if isinstance(state, Exception):
            raise state
        task = {"conversion_task_id": task_ids[0], "state": state}
        if state == "completed" and self.volume_id:
            task["import_volume"] = {"volume": {"id": self.volume_id}}
        return {"conversion_tasks": [task]}

    def describe_volumes(self, volume_ids):
        self._record("describe_volumes", list(volume_ids))
        return {"volumes": [{"volume_id": v, "state": "available"} for v in volume_ids]}

    def wait_until_volume_available(self, volume_id):
        self._record("wait_until_volume_available", volume_id)
        if self.volume_wait_error:
            raise self.volume_wait_error


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_client():
    return FakeComputeClient()


@pytest.fixture
def make_client():
    """Return the FakeComputeClient class for tests that need custom behavior."""
    return FakeComputeClient


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def api_error():
    return ComputeAPIError("POST /api/v1/test returned 503: unavailable", status_code=503)
