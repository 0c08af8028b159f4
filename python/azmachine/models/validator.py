"""
azmachine/models/validator.py

Validates raw Azure Resource Manager JSON against pydantic-based types using
TypeAdapter, reporting malformed payloads as BackendError with resource context.
"""

from typing import Any, Optional, Type, TypeVar
from pydantic import ValidationError, TypeAdapter

from azmachine.errors import BackendError

T = TypeVar("T")


def validate_arm_payload(
    obj: Any,
    expected_type: Type[T],
    *,
    service: Optional[str] = None,
    resource_name: Optional[str] = None,
) -> T:
    """
    Validates that an ARM response body conforms to the expected type.

    Args:
        obj (Any): The decoded JSON body.
        expected_type (Type[T]): The pydantic model (or typing construct) to validate against.
        service (Optional[str]): Resource-kind label for error context.
        resource_name (Optional[str]): Resource name for error context.

    Returns:
        T: The validated object.

    Raises:
        BackendError: If the payload does not match the expected shape.
    """
    try:
        return TypeAdapter(expected_type).validate_python(obj)
    except ValidationError as e:
        raise BackendError(
            f"Unexpected ARM payload for {getattr(expected_type, '__name__', expected_type)}: {e}",
            service=service,
            resource_name=resource_name,
        ) from e
