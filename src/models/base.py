"""
Base model class for all catalog models.

Provides common functionality and fields for all models:
- Integer primary key plus a string ``uuid`` used as the public identifier
- Timestamp fields (created_at, updated_at)
- Utility methods (to_dict, update_from_dict)
- SQLAlchemy declarative base
"""

import uuid as uuid_lib
from datetime import datetime
from typing import Any, Dict, Iterable

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base, validates

from src.utils.datetime_utils import utc_now

Base = declarative_base()


def new_uuid() -> str:
    """Generate a public identifier for a new record."""
    return str(uuid_lib.uuid4())


class BaseModel(Base):
    """
    Abstract base model with common fields and methods.

    All models inherit from this class to get:
    - id: Internal primary key
    - uuid: Public identifier (composition keys and API references use it)
    - created_at: Timestamp when record was created
    - updated_at: Timestamp when record was last modified
    - to_dict(): Convert model to dictionary
    """

    __abstract__ = True

    # Fields callers may never set through update_from_dict
    PROTECTED_FIELDS = ("id", "uuid", "created_at", "updated_at")

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Stored as string for SQLite compatibility
    uuid = Column(String(36), unique=True, nullable=False, default=new_uuid, index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Datetimes are rendered as ISO-8601 strings so the result is JSON
        serializable (backup snapshots store it verbatim).

        Args:
            exclude: Column names to leave out

        Returns:
            Dictionary representation of the model
        """
        result = {}
        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            result[column.name] = value
        return result

    @validates("uuid")
    def _validate_uuid(self, _key: str, value: Any) -> str:
        """Normalize UUID values to strings for SQLite compatibility."""
        if value is None:
            return value
        return str(value)

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        """
        Update model instance from dictionary.

        Only updates columns present in ``data``; identity and timestamp
        columns are left alone.

        Args:
            data: Dictionary with field names and values
        """
        for column in self.__table__.columns:
            if column.name in data and column.name not in self.PROTECTED_FIELDS:
                setattr(self, column.name, data[column.name])
        self.updated_at = utc_now()

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        attrs = []
        if getattr(self, "uuid", None) is not None:
            attrs.append(f"uuid='{self.uuid}'")
        if getattr(self, "sku", None) is not None:
            attrs.append(f"sku='{self.sku}'")
        if getattr(self, "name", None) is not None:
            attrs.append(f"name='{self.name}'")
        return f"{class_name}({', '.join(attrs)})"
