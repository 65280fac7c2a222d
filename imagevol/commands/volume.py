"""Volume CLI handlers: create a volume from a manifest, inspect import tasks."""

import logging
import sys

from imagevol.config import load_config, resolve_api_key, validate_config
from imagevol.errors import ComputeAPIError, ProvisioningError
from imagevol.provisioning.client import RestComputeClient
from imagevol.provisioning.types import ConversionTask
from imagevol.provisioning.volume import VolumeDriver

logger = logging.getLogger(__name__)


def _load(args):
    config = load_config(args.config)
    if args.api_url:
        config["compute"]["api_url"] = args.api_url
    if args.region:
        config["compute"]["region"] = args.region
    validate_config(config)
    return config


# ── CLI handlers ───────────────────────────────────────────────────


def handle_create(args):
    """CLI handler for 'volume create'."""
    config = _load(args)
    api_key = resolve_api_key(args.api_key, dry_run=args.dry_run)

    driver = VolumeDriver.from_config(config, api_key, dry_run=args.dry_run, logger=logging.getLogger("imagevol.volume"))
    try:
        volume_id = driver.create(args.manifest_url)
    except ProvisioningError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    finally:
        driver.client.close()

    print(volume_id)


def handle_task_status(args):
    """CLI handler for 'volume task-status'."""
    config = _load(args)
    api_key = resolve_api_key(args.api_key, dry_run=args.dry_run)
    compute = config["compute"]

    with RestComputeClient(api_key, api_url=compute["api_url"], region=compute.get("region"), dry_run=args.dry_run) as client:
        try:
            response = client.describe_conversion_tasks([args.task_id])
        except ComputeAPIError as e:
            logger.error(f"Error: {e}")
            sys.exit(1)

    tasks = response.get("conversion_tasks") or []
    if not tasks:
        logger.error(f"Error: conversion task {args.task_id} not found.")
        sys.exit(1)

    task = ConversionTask.from_api(tasks[0])
    logger.info(f"Task:    {task.id}")
    logger.info(f"State:   {task.state}")
    if task.status_message:
        logger.info(f"Message: {task.status_message}")
    logger.info(f"Volume:  {task.volume_id or '(not yet created)'}")


# ── Registration ───────────────────────────────────────────────────


def _add_common_args(parser):
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--api-key", default=None, help="Compute API key (fallback: IMAGEVOL_API_KEY env var)")
    parser.add_argument("--api-url", default=None, help="Compute API base URL (overrides config)")
    parser.add_argument("--region", default=None, help="Region to provision in (overrides config)")
    parser.add_argument("--dry-run", action="store_true", help="Print compute API requests without executing")


def register_volume_command(subparsers):
    """Register the 'volume' command with create/task-status actions."""
    volume_parser = subparsers.add_parser("volume", help="Provision volumes from machine images")
    action_subparsers = volume_parser.add_subparsers(dest="action", required=True)

    create_parser = action_subparsers.add_parser("create", help="Import a machine image into a new volume")
    create_parser.add_argument("--manifest-url", required=True, help="URL or path of the image manifest")
    _add_common_args(create_parser)
    create_parser.set_defaults(func=handle_create)

    status_parser = action_subparsers.add_parser("task-status", help="Show the state of an import task")
    status_parser.add_argument("--task-id", required=True, help="Conversion task ID")
    _add_common_args(status_parser)
    status_parser.set_defaults(func=handle_task_status)
