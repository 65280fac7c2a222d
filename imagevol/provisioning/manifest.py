"""Image manifest fetching and decoding.

The import-volume manifest is a small XML document published next to the
disk image parts::

    <manifest>
      <version>2010-11-15</version>
      <file-format>VMDK</file-format>
      <import>
        <size>1073741824</size>
        <volume-size>4</volume-size>
        ...
      </import>
    </manifest>

Only ``file-format`` and ``import/volume-size`` (GB) are used. A JSON body of
the form ``{"fileFormat": "VMDK", "volumeSizeGB": 4}`` is accepted too.

Manifests are trusted input: they come from the bucket the operator uploaded
the image to, and are parsed with the standard library XML parser. Bodies
larger than ``MAX_MANIFEST_BYTES`` are rejected before parsing.
"""

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from urllib.parse import urlparse

import httpx

from imagevol.errors import ManifestError
from imagevol.provisioning.types import ImageManifest

logger = logging.getLogger(__name__)

MAX_MANIFEST_BYTES = 1024 * 1024


def _read_manifest_bytes(url, client=None, timeout=60):
    parsed = urlparse(url)
    if parsed.scheme in ("", "file"):
        path = Path(parsed.path if parsed.scheme == "file" else url).expanduser()
        try:
            return path.read_bytes()
        except OSError as e:
            raise ManifestError(f"reading manifest file {path}: {e}") from e

    try:
        if client is None:
            with httpx.Client(timeout=timeout, follow_redirects=True) as http:
                resp = http.get(url)
        else:
            resp = client.get(url)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise ManifestError(f"fetching manifest: {e}") from e
    return resp.content


def _parse_size(raw):
    try:
        size = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ManifestError(f"volume size '{raw}' is not an integer") from None
    if size <= 0:
        raise ManifestError(f"volume size must be positive (got {size})")
    return size


def _parse_xml(body):
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ManifestError(f"deserializing manifest XML: {e}") from e
    file_format = (root.findtext("file-format") or "").strip()
    size = root.findtext("import/volume-size")
    return file_format, size


def _parse_json(body):
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ManifestError(f"deserializing manifest JSON: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError("manifest JSON must be an object")
    return str(data.get("fileFormat") or "").strip(), data.get("volumeSizeGB")


def parse_manifest(body: bytes) -> ImageManifest:
    """Decode manifest bytes (XML or JSON) into an ImageManifest."""
    if len(body) > MAX_MANIFEST_BYTES:
        raise ManifestError(f"manifest is {len(body)} bytes, larger than the {MAX_MANIFEST_BYTES} byte limit")
    if body.lstrip().startswith(b"{"):
        file_format, size = _parse_json(body)
    else:
        file_format, size = _parse_xml(body)

    if not file_format:
        raise ManifestError("manifest is missing the file format")
    if size is None:
        raise ManifestError("manifest is missing the volume size")
    return ImageManifest(file_format=file_format, volume_size_gb=_parse_size(size))


def fetch_manifest(url, client=None, timeout=60) -> ImageManifest:
    """Retrieve and decode the manifest at *url*.

    Args:
        url: http(s) URL, ``file://`` URL or plain filesystem path.
        client: optional ``httpx.Client`` to issue the GET with.
        timeout: seconds, used only when no client is given.

    Raises:
        ManifestError: the manifest could not be fetched or decoded.
    """
    body = _read_manifest_bytes(url, client=client, timeout=timeout)
    manifest = parse_manifest(body)
    logger.debug(f"Manifest: format={manifest.file_format} size={manifest.volume_size_gb}GB")
    return manifest
