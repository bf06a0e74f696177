"""Base model for all records handled by the billing core.

Records arrive from an external data store as loosely-typed dictionaries.
This module provides the Pydantic base class that turns them into typed
models and the shared coercion helpers for money and percentages.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class BaseDataModel(BaseModel):
    """Base class for all data models.

    Provides common configuration for:
    - Validation with type checking (also on assignment)
    - Arbitrary types support for dates and decimals
    - Ignoring store columns the billing core does not use

    Example:
        >>> class Client(BaseDataModel):
        ...     name: str
        >>> Client.model_validate({"name": "Acme", "company_id": "c-1"}).name
        'Acme'
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True,
        strict=False,
        # Store rows carry joins and bookkeeping columns we do not model
        extra="ignore",
        frozen=False,
    )


def to_decimal(value: Any) -> Decimal:
    """Convert a numeric value to Decimal for precision.

    Args:
        value: The value to convert (str, int, float or Decimal)

    Returns:
        The value as a Decimal

    Raises:
        ValueError: If the value cannot be converted to Decimal
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Cannot convert {value!r} to Decimal: {e}")


def to_optional_decimal(value: Any) -> Optional[Decimal]:
    """Convert to Decimal, treating None and blank strings as missing."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return to_decimal(value)
