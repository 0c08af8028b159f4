"""
azmachine/arm/__init__.py

Azure Resource Manager backend: the aiohttp client, long-running operation
handles, per-resource-kind clients and the client factory.
"""

from azmachine.arm.client import ArmResponse, AsyncArmClient
from azmachine.arm.factory import ArmClientFactory
from azmachine.arm.operations import ArmOperation

__all__ = ["ArmResponse", "AsyncArmClient", "ArmClientFactory", "ArmOperation"]
