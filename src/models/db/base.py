"""Base Model Module."""

import json
from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any, Literal

from sqlalchemy import DateTime, Enum, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

__all__ = ["Base", "TimestampMixin", "str_enum", "utcnow"]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def generic_serialize(obj: Any) -> Any:
    """Convert a column value to a JSON-serializable format.

    Args:
        obj: The object to convert.

    Returns:
        A JSON-serializable representation of the object.
    """
    if obj is None:
        return None
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, PyEnum):
        return obj.value
    return str(obj)


def str_enum(enum_cls: type[PyEnum]) -> Enum:
    """Column type persisting a string enum by its wire value.

    Args:
        enum_cls (type[PyEnum]): Enumeration stored in the column.

    Returns:
        Enum: A non-native VARCHAR(16) enum type.
    """
    return Enum(
        enum_cls,
        native_enum=False,
        length=16,
        values_callable=lambda cls: [member.value for member in cls],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Base class for all database models."""

    def model_dump(
        self,
        *,
        mode: Literal["json", "python"] | str = "python",
        exclude: set[str] | None = None,
    ) -> dict[str, Any]:
        """Dump the mapped columns to a dictionary.

        Imitates the behavior of Pydantic's model_dump method.
        """
        exclude = exclude or set()
        result = {
            attr.key: getattr(self, attr.key)
            for attr in inspect(self).mapper.column_attrs
            if attr.key not in exclude
        }

        if mode == "python":
            return result
        if mode == "json":
            return json.loads(json.dumps(result, default=generic_serialize))
        raise ValueError(f"Unsupported mode: {mode}")


class TimestampMixin:
    """Adds creation and modification timestamps to a model."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
