"""
An asynchronous Azure Resource Manager client over aiohttp: authenticated
GET/PUT/DELETE against management.azure.com, ARM error decoding, and polling of
long-running operations via the Azure-AsyncOperation / Location headers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional, Type

import aiohttp

from azmachine.errors import AzureApiError, BackendError, ErrorClass, NotFoundError
from azmachine.models.settings import AzureSettings

logger = logging.getLogger(__name__)

_TERMINAL_SUCCESS = {"succeeded"}
_TERMINAL_FAILURE = {"failed", "canceled", "cancelled"}


class ArmResponse:
    """Status, headers and decoded JSON body of one ARM call."""

    def __init__(
        self, status: int, headers: Mapping[str, str], body: Optional[Any]
    ) -> None:
        self.status = status
        self.headers = dict(headers)
        self.body = body

    @property
    def body_dict(self) -> Dict[str, Any]:
        return self.body if isinstance(self.body, dict) else {}


class AsyncArmClient:
    """An asynchronous ARM client bound to one subscription and bearer token.

    Usage:
        async with AsyncArmClient(settings, subscription_id, token) as arm:
            resp = await arm.request("GET", path, api_version="2023-09-01")
    """

    def __init__(
        self,
        settings: AzureSettings,
        subscription_id: str,
        access_token: str,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the AsyncArmClient.

        Args:
            settings (AzureSettings): Endpoint, SSL verification, poll interval.
            subscription_id (str): Subscription every path is scoped to.
            access_token (str): Bearer token for ARM.
            session (Optional[aiohttp.ClientSession]): A shared session; when
                omitted the client creates and owns its own.
        """
        self._endpoint = settings.arm_endpoint.rstrip("/")
        self._verify_ssl = settings.verify_ssl
        self._poll_interval = settings.poll_interval_seconds
        self._token = access_token
        self._owns_session = session is None
        self._session: Optional[aiohttp.ClientSession] = session
        self.subscription_id = subscription_id

    async def __aenter__(self) -> AsyncArmClient:
        """Async context manager entry, creates an aiohttp session if missing."""
        await self.ensure_session()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit, closes the session if this client owns it."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def ensure_session(self) -> aiohttp.ClientSession:
        """Ensure an aiohttp session is available, creating one if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def subscription_path(self, suffix: str) -> str:
        """'/subscriptions/<id>' + suffix."""
        return f"/subscriptions/{self.subscription_id}{suffix}"

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
            return path_or_url
        return f"{self._endpoint}{path_or_url}"

    async def request(
        self,
        method: str,
        path_or_url: str,
        *,
        api_version: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
        service: Optional[str] = None,
        resource_name: Optional[str] = None,
    ) -> ArmResponse:
        """Issue one ARM call.

        Args:
            method: HTTP method.
            path_or_url: A path under the ARM endpoint, or an absolute polling URL.
            api_version: Appended as the `api-version` query parameter if given.
            body: JSON body for PUT/PATCH.
            service: Resource-kind label for error context.
            resource_name: Resource name for error context.

        Returns:
            ArmResponse: The response for any status below 400.

        Raises:
            NotFoundError: On HTTP 404.
            BackendError: On any other HTTP error or transport failure.
        """
        session = await self.ensure_session()
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }
        params = {"api-version": api_version} if api_version else None
        try:
            async with session.request(
                method,
                self._url(path_or_url),
                params=params,
                json=body,
                headers=headers,
                ssl=self._verify_ssl,
            ) as resp:
                text = await resp.text()
                status = resp.status
                resp_headers = dict(resp.headers)
        except aiohttp.ClientError as exc:
            raise BackendError(
                f"{method} {path_or_url} failed: {exc}",
                service=service,
                resource_name=resource_name,
                error_class=ErrorClass.transient,
            ) from exc

        decoded = _decode(text)
        if status >= 400:
            raise _error_from_response(
                method, path_or_url, status, decoded, service, resource_name
            )
        logger.debug("%s %s -> %d", method, path_or_url, status)
        return ArmResponse(status, resp_headers, decoded)

    async def poll(
        self,
        initial: ArmResponse,
        *,
        service: Optional[str] = None,
        resource_name: Optional[str] = None,
    ) -> ArmResponse:
        """Follow a long-running operation until it reaches a terminal state.

        Returns:
            ArmResponse: The last response observed.

        Raises:
            BackendError: If the operation ends in Failed or Canceled.
        """
        async_url = _header(initial.headers, "Azure-AsyncOperation")
        location_url = _header(initial.headers, "Location")

        if async_url:
            return await self._poll_async_operation(
                async_url, initial, service=service, resource_name=resource_name
            )
        if location_url and initial.status == 202:
            return await self._poll_location(
                location_url, initial, service=service, resource_name=resource_name
            )
        _raise_on_failed_state(initial.body_dict, service, resource_name)
        return initial

    async def _poll_async_operation(
        self,
        url: str,
        initial: ArmResponse,
        *,
        service: Optional[str],
        resource_name: Optional[str],
    ) -> ArmResponse:
        last = initial
        while True:
            await asyncio.sleep(self._retry_after(last))
            last = await self.request(
                "GET", url, service=service, resource_name=resource_name
            )
            status = str(last.body_dict.get("status", "")).lower()
            if status in _TERMINAL_SUCCESS:
                return last
            if status in _TERMINAL_FAILURE:
                raise _operation_failed(last.body_dict, service, resource_name)

    async def _poll_location(
        self,
        url: str,
        initial: ArmResponse,
        *,
        service: Optional[str],
        resource_name: Optional[str],
    ) -> ArmResponse:
        last = initial
        while True:
            await asyncio.sleep(self._retry_after(last))
            last = await self.request(
                "GET", url, service=service, resource_name=resource_name
            )
            if last.status != 202:
                _raise_on_failed_state(last.body_dict, service, resource_name)
                return last

    def _retry_after(self, resp: ArmResponse) -> float:
        raw = _header(resp.headers, "Retry-After")
        if raw is not None:
            try:
                return max(float(raw), 0.0)
            except ValueError:
                pass
        return self._poll_interval


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _decode(text: str) -> Optional[Any]:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"message": text}


def _error_from_response(
    method: str,
    path: str,
    status: int,
    body: Optional[Any],
    service: Optional[str],
    resource_name: Optional[str],
) -> AzureApiError:
    error = body.get("error") if isinstance(body, dict) else None
    error = error if isinstance(error, dict) else {}
    code = error.get("code")
    message = error.get("message") or (body if body is not None else "")
    cls: Type[AzureApiError] = NotFoundError if status == 404 else BackendError
    return cls(
        f"{method} {path} returned {status} ({code or 'no code'}): {message}",
        service=service,
        resource_name=resource_name,
        status=status,
        code=code,
    )


def _raise_on_failed_state(
    body: Dict[str, Any], service: Optional[str], resource_name: Optional[str]
) -> None:
    properties = body.get("properties")
    state = properties.get("provisioningState") if isinstance(properties, dict) else None
    if state is not None and str(state).lower() in _TERMINAL_FAILURE:
        raise BackendError(
            f"provisioningState is {state}",
            service=service,
            resource_name=resource_name,
        )


def _operation_failed(
    body: Dict[str, Any], service: Optional[str], resource_name: Optional[str]
) -> BackendError:
    error = body.get("error") if isinstance(body.get("error"), dict) else {}
    code = error.get("code")
    return BackendError(
        f"operation {body.get('status')}: {error.get('message') or 'no detail'}",
        service=service,
        resource_name=resource_name,
        code=code,
    )
