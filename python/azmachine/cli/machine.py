#!/usr/bin/env python3
"""
azmachine/cli/machine.py

Command-line access to the machine driver.

Usage example:
  python -m azmachine.cli.machine create \
      --machine-name worker-1 \
      --provider-spec worker.yaml \
      --credentials-file azure_sp.json \
      --user-data cloud-init.yaml

  python -m azmachine.cli.machine delete \
      --machine-name worker-1 --provider-spec worker.yaml --retries 3

Credentials come from a JSON file with ARM_SUBSCRIPTION_ID and ARM_ACCESS_TOKEN
keys (ARM_CLIENT_ID, ARM_CLIENT_SECRET and ARM_TENANT_ID are optional), or from
the environment variables of the same names. `--dry-run` runs against the in-memory
backend instead of Azure.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, NoReturn, Optional

import aiofiles
import yaml
from pydantic import BaseModel, ValidationError

from azmachine.arm.factory import ArmClientFactory
from azmachine.clients import ClientFactory
from azmachine.driver import MachineDriver
from azmachine.errors import AzureApiError, ErrorClass
from azmachine.fake.backend import FakeBackend, FakeClientFactory
from azmachine.models.credentials import AzureCredentials, MachineSecret
from azmachine.models.machine import (
    CreateMachineRequest,
    DeleteMachineRequest,
    GetMachineStatusRequest,
)
from azmachine.models.provider_spec import ProvisioningSpec
from azmachine.models.settings import AzureSettings
from azmachine.utils.async_retry import async_retry


def main() -> NoReturn:
    """
    Entry point for the create/delete/status subcommands.
    """
    parser = argparse.ArgumentParser(
        prog="azmachine.cli.machine",
        description="Create, delete or inspect an Azure machine with its NIC and disks.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in [
        ("create", _create, "Create the VM, NIC and disks (rolled back on failure)."),
        ("delete", _delete, "Delete the VM, NIC and disks (idempotent)."),
        ("status", _status, "Print the provider ID of an existing VM."),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        _add_common_arguments(sub)
        sub.set_defaults(func=func)

    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(args.func(args))
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    else:
        sys.exit(0)


def _add_common_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--machine-name", required=True, help="Name of the machine.")
    sub.add_argument(
        "--provider-spec",
        required=True,
        help="YAML or JSON file holding the provider spec.",
    )
    sub.add_argument(
        "--credentials-file",
        help="JSON file with ARM_* keys (default: read ARM_* environment variables).",
    )
    sub.add_argument(
        "--user-data",
        help="File whose contents become the VM's cloud-init custom data.",
    )
    sub.add_argument(
        "--retries",
        type=int,
        default=1,
        help="Total attempts for the call when the failure is transient (default: 1).",
    )
    sub.add_argument(
        "--retry-delay",
        type=float,
        default=10.0,
        help="Seconds between attempts (default: 10).",
    )
    sub.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run against the in-memory backend instead of Azure.",
    )


async def _read_text(path: str) -> str:
    if not os.path.isfile(path):
        raise ValueError(f"File not found: {path}")
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return await f.read()


async def _load_provider_spec(path: str) -> ProvisioningSpec:
    raw = yaml.safe_load(await _read_text(path))
    try:
        return ProvisioningSpec.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid provider spec {path}: {exc}") from exc


async def _load_credentials(path: Optional[str]) -> AzureCredentials:
    data: Dict[str, Any]
    if path:
        data = json.loads(await _read_text(path))
    else:
        data = dict(os.environ)
    try:
        return AzureCredentials.from_env_dict(data)
    except KeyError as exc:
        raise ValueError(f"Missing Azure credential {exc}") from exc
    except ValidationError as exc:
        raise ValueError(f"Invalid Azure credentials: {exc}") from exc


async def _build_request_fields(args: argparse.Namespace) -> Dict[str, Any]:
    spec = await _load_provider_spec(args.provider_spec)
    credentials = await _load_credentials(args.credentials_file)
    user_data = await _read_text(args.user_data) if args.user_data else ""
    return {
        "machine_name": args.machine_name,
        "provider_spec": spec,
        "secret": MachineSecret(credentials=credentials, user_data=user_data),
    }


def _factory(args: argparse.Namespace, spec: ProvisioningSpec) -> ClientFactory:
    if args.dry_run:
        backend = FakeBackend()
        backend.seed_for_spec(spec)
        return FakeClientFactory(backend)
    return ArmClientFactory(AzureSettings())


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, AzureApiError) and exc.error_class is ErrorClass.transient


def _print(model: BaseModel) -> None:
    print(model.model_dump_json(indent=2))


async def _create(args: argparse.Namespace) -> None:
    req = CreateMachineRequest(**(await _build_request_fields(args)))
    async with _factory(args, req.provider_spec) as factory:
        driver = MachineDriver(factory)
        call = async_retry(args.retries, args.retry_delay, retry_if=_is_transient)(
            driver.create_machine
        )
        _print(await call(req))


async def _delete(args: argparse.Namespace) -> None:
    req = DeleteMachineRequest(**(await _build_request_fields(args)))
    async with _factory(args, req.provider_spec) as factory:
        driver = MachineDriver(factory)
        call = async_retry(args.retries, args.retry_delay, retry_if=_is_transient)(
            driver.delete_machine
        )
        await call(req)
        print(f"Deleted machine {req.vm_name}")


async def _status(args: argparse.Namespace) -> None:
    req = GetMachineStatusRequest(**(await _build_request_fields(args)))
    async with _factory(args, req.provider_spec) as factory:
        _print(await MachineDriver(factory).get_machine_status(req))


if __name__ == "__main__":
    main()
