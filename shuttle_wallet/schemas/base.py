"""Shared pydantic base for ledger documents and API payloads."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, model_serializer

from shuttle_wallet.utils.datetime_helpers import ensure_utc


def isoformat_z(moment: datetime) -> str:
    """ISO 8601 in UTC with a ``Z`` suffix; naive values are read as UTC."""
    return ensure_utc(moment).isoformat().replace("+00:00", "Z")


def _with_utc_timestamps(value):
    if isinstance(value, datetime):
        return isoformat_z(value)
    if isinstance(value, (list, tuple)):
        return [_with_utc_timestamps(item) for item in value]
    if isinstance(value, dict):
        return {key: _with_utc_timestamps(item) for key, item in value.items()}
    return value


class BaseSchema(BaseModel):
    """Reads ORM rows directly and emits every timestamp as a UTC ``Z`` string."""

    model_config = ConfigDict(from_attributes=True)

    @model_serializer(mode="wrap")
    def serialize_with_utc_timestamps(self, handler):
        return _with_utc_timestamps(handler(self))
