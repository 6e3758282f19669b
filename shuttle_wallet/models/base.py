"""Base utilities for SQLAlchemy models."""
from datetime import datetime, UTC
from decimal import Decimal
import uuid

from sqlalchemy import Column, Numeric, String


def new_document_id() -> str:
    """Store-assigned opaque document identifier."""
    return uuid.uuid4().hex


def get_id_column(*args, **kwargs):
    """Get an opaque string id column.

    Document ids are assigned by the store on creation and never parsed by
    callers, so they are kept as plain strings instead of native UUIDs.

    Example:
        id = get_id_column(primary_key=True, default=new_document_id)
        user_id = get_id_column(nullable=False, index=True)
    """
    return Column(String(64), *args, **kwargs)


MONEY_PRECISION = 12
MONEY_SCALE = 2
MAX_MONEY = Decimal(10) ** (MONEY_PRECISION - MONEY_SCALE) - Decimal("0.01")

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 255


def get_money_column(*args, **kwargs):
    """Get a signed money column with two decimal places, bounded by ``MAX_MONEY``."""
    return Column(Numeric(MONEY_PRECISION, MONEY_SCALE, asdecimal=True), *args, **kwargs)


def utc_now() -> datetime:
    return datetime.now(UTC)
