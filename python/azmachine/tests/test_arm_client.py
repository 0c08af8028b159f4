"""
Tests for the aiohttp Azure Resource Manager client and the ARM-backed resource
clients, against a local aiohttp stub of the management endpoint.
"""

from typing import Any, Dict

import pytest
from aiohttp import web
from aiohttp import test_utils

from azmachine.arm.client import AsyncArmClient
from azmachine.arm.factory import ArmClientFactory
from azmachine.arm.resources import ArmDisksClient, ArmNetworkInterfacesClient
from azmachine.errors import BackendError, ErrorClass, NotFoundError
from azmachine.models.credentials import AzureCredentials, MachineSecret
from azmachine.models.resources import NetworkInterface
from azmachine.models.settings import AzureSettings

SUBSCRIPTION = "sub-1"
TOKEN = "token-1"
API_VERSION = "2023-09-01"
NIC_PATH = (
    f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg-1"
    "/providers/Microsoft.Network/networkInterfaces/{name}"
)
DISK_PATH = (
    f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg-1"
    "/providers/Microsoft.Compute/disks/{name}"
)


def _stub_app(state: Dict[str, Any]) -> web.Application:
    """A tiny ARM: NICs with async-operation PUTs and Location-polled DELETEs."""

    async def put_nic(request: web.Request) -> web.Response:
        state["auth"] = request.headers.get("Authorization")
        state["api_version"] = request.query.get("api-version")
        name = request.match_info["name"]
        body = await request.json()
        body["id"] = request.path
        body["properties"]["provisioningState"] = "Updating"
        state["nics"][name] = body
        return web.json_response(
            body,
            status=201,
            headers={
                "Azure-AsyncOperation": f"http://{request.host}/operations/{name}",
                "Retry-After": "0",
            },
        )

    async def get_nic(request: web.Request) -> web.Response:
        name = request.match_info["name"]
        if name not in state["nics"]:
            return web.json_response(
                {"error": {"code": "ResourceNotFound", "message": f"{name} not found"}},
                status=404,
            )
        return web.json_response(state["nics"][name])

    async def delete_nic(request: web.Request) -> web.Response:
        name = request.match_info["name"]
        state["nics"].pop(name, None)
        return web.Response(
            status=202,
            headers={
                "Location": f"http://{request.host}/locations/{name}",
                "Retry-After": "0",
            },
        )

    async def operation(request: web.Request) -> web.Response:
        name = request.match_info["name"]
        state["polls"] = state.get("polls", 0) + 1
        if name == "broken":
            return web.json_response(
                {"status": "Failed", "error": {"code": "InternalServerError", "message": "exploded"}}
            )
        if state["polls"] < 2:
            return web.json_response({"status": "InProgress"})
        state["nics"][name]["properties"]["provisioningState"] = "Succeeded"
        return web.json_response({"status": "Succeeded"})

    async def location(request: web.Request) -> web.Response:
        state["location_polls"] = state.get("location_polls", 0) + 1
        if state["location_polls"] < 2:
            return web.Response(status=202, headers={"Retry-After": "0"})
        return web.Response(status=200)

    async def get_disk(request: web.Request) -> web.Response:
        return web.json_response(
            {"error": {"code": "AuthorizationFailed", "message": "no access"}},
            status=403,
        )

    app = web.Application()
    app.router.add_put(NIC_PATH, put_nic)
    app.router.add_get(NIC_PATH, get_nic)
    app.router.add_delete(NIC_PATH, delete_nic)
    app.router.add_get("/operations/{name}", operation)
    app.router.add_get("/locations/{name}", location)
    app.router.add_get(DISK_PATH, get_disk)
    return app


@pytest.fixture
def state() -> Dict[str, Any]:
    return {"nics": {}}


def _settings(server: test_utils.TestServer) -> AzureSettings:
    return AzureSettings(
        arm_endpoint=f"http://{server.host}:{server.port}",
        poll_interval_seconds=0,
    )


class TestArmClient:
    @pytest.mark.asyncio
    async def test_put_polls_async_operation_then_fetches(self, state):
        async with test_utils.TestServer(_stub_app(state)) as server:
            async with AsyncArmClient(_settings(server), SUBSCRIPTION, TOKEN) as arm:
                nics = ArmNetworkInterfacesClient(arm, API_VERSION)
                op = await nics.create_or_update(
                    "rg-1", "vm-1-nic", {"location": "westeurope", "properties": {}}
                )
                await op.wait()
                nic = await op.result()

        assert isinstance(nic, NetworkInterface)
        assert nic.properties["provisioningState"] == "Succeeded"
        assert state["polls"] == 2
        assert state["auth"] == f"Bearer {TOKEN}"
        assert state["api_version"] == API_VERSION

    @pytest.mark.asyncio
    async def test_failed_operation_raises_backend_error(self, state):
        async with test_utils.TestServer(_stub_app(state)) as server:
            async with AsyncArmClient(_settings(server), SUBSCRIPTION, TOKEN) as arm:
                nics = ArmNetworkInterfacesClient(arm, API_VERSION)
                op = await nics.create_or_update("rg-1", "broken", {"properties": {}})
                with pytest.raises(BackendError) as excinfo:
                    await op.wait()

        err = excinfo.value
        assert err.code == "InternalServerError"
        assert err.error_class is ErrorClass.transient
        assert err.resource_name == "broken"

    @pytest.mark.asyncio
    async def test_result_before_wait_is_an_error(self, state):
        async with test_utils.TestServer(_stub_app(state)) as server:
            async with AsyncArmClient(_settings(server), SUBSCRIPTION, TOKEN) as arm:
                nics = ArmNetworkInterfacesClient(arm, API_VERSION)
                op = await nics.create_or_update("rg-1", "vm-1-nic", {"properties": {}})
                with pytest.raises(RuntimeError):
                    await op.result()

    @pytest.mark.asyncio
    async def test_delete_polls_location(self, state):
        state["nics"]["vm-1-nic"] = {"properties": {}}
        async with test_utils.TestServer(_stub_app(state)) as server:
            async with AsyncArmClient(_settings(server), SUBSCRIPTION, TOKEN) as arm:
                nics = ArmNetworkInterfacesClient(arm, API_VERSION)
                op = await nics.delete("rg-1", "vm-1-nic")
                await op.wait()
                assert await op.result() is None

        assert state["location_polls"] == 2
        assert "vm-1-nic" not in state["nics"]

    @pytest.mark.asyncio
    async def test_404_is_not_found(self, state):
        async with test_utils.TestServer(_stub_app(state)) as server:
            async with AsyncArmClient(_settings(server), SUBSCRIPTION, TOKEN) as arm:
                nics = ArmNetworkInterfacesClient(arm, API_VERSION)
                with pytest.raises(NotFoundError) as excinfo:
                    await nics.get("rg-1", "missing-nic")

        err = excinfo.value
        assert err.status == 404
        assert err.code == "ResourceNotFound"
        assert err.service == "network_interfaces"
        assert err.resource_name == "missing-nic"

    @pytest.mark.asyncio
    async def test_http_error_is_classified(self, state):
        async with test_utils.TestServer(_stub_app(state)) as server:
            async with AsyncArmClient(_settings(server), SUBSCRIPTION, TOKEN) as arm:
                disks = ArmDisksClient(arm, API_VERSION)
                with pytest.raises(BackendError) as excinfo:
                    await disks.get("rg-1", "vm-1-os-disk")

        err = excinfo.value
        assert not isinstance(err, NotFoundError)
        assert err.status == 403
        assert err.error_class is ErrorClass.quota_or_permission
        assert "no access" in str(err)

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self):
        settings = AzureSettings(arm_endpoint="http://127.0.0.1:1", poll_interval_seconds=0)
        async with AsyncArmClient(settings, SUBSCRIPTION, TOKEN) as arm:
            with pytest.raises(BackendError) as excinfo:
                await arm.request("GET", "/subscriptions", service="subnet")

        assert excinfo.value.error_class is ErrorClass.transient


class TestArmClientFactory:
    @pytest.mark.asyncio
    async def test_requires_access_token(self):
        secret = MachineSecret(
            credentials=AzureCredentials(
                client_id="c", client_secret="s", tenant_id="t", subscription_id=SUBSCRIPTION
            )
        )
        async with ArmClientFactory(AzureSettings()) as factory:
            with pytest.raises(ValueError):
                await factory.setup(secret)

    @pytest.mark.asyncio
    async def test_builds_bundle(self):
        secret = MachineSecret(
            credentials=AzureCredentials(
                client_id="c",
                client_secret="s",
                tenant_id="t",
                subscription_id=SUBSCRIPTION,
                access_token=TOKEN,
            )
        )
        async with ArmClientFactory(AzureSettings()) as factory:
            clients = await factory.setup(secret)

        assert isinstance(clients.nic, ArmNetworkInterfacesClient)
        assert isinstance(clients.disk, ArmDisksClient)
