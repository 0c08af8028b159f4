"""
azmachine/arm/operations.py

ArmOperation: the Operation handle returned by the ARM-backed clients for
PUT/DELETE calls. `wait()` polls until the operation is terminal; `result()`
re-reads the realized resource (or returns None for deletions).
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar, cast

from azmachine.arm.client import ArmResponse, AsyncArmClient
from azmachine.clients import Operation

T = TypeVar("T")


class ArmOperation(Operation[T]):
    """A submitted ARM long-running operation."""

    def __init__(
        self,
        arm: AsyncArmClient,
        initial: ArmResponse,
        *,
        fetch: Optional[Callable[[], Awaitable[T]]] = None,
        service: Optional[str] = None,
        resource_name: Optional[str] = None,
    ) -> None:
        """
        Args:
            arm: Client used for polling.
            initial: Response of the submitting PUT/DELETE.
            fetch: Coroutine factory reading the realized resource; None for deletions.
            service: Resource-kind label for error context.
            resource_name: Resource name for error context.
        """
        self._arm = arm
        self._initial = initial
        self._fetch = fetch
        self._service = service
        self._resource_name = resource_name
        self._done = False

    async def wait(self) -> None:
        await self._arm.poll(
            self._initial, service=self._service, resource_name=self._resource_name
        )
        self._done = True

    async def result(self) -> T:
        if not self._done:
            raise RuntimeError(
                f"Operation on {self._resource_name} has not completed; call wait() first."
            )
        if self._fetch is None:
            return cast(T, None)
        return await self._fetch()
