"""User schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, ValidationError, field_validator

from shuttle_wallet.models.base import DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH
from shuttle_wallet.schemas.base import BaseSchema
from shuttle_wallet.utils.datetime_helpers import ensure_utc
from shuttle_wallet.utils.exceptions import CorruptDocumentError

MEMBER_ROLE = "member"


class User(BaseSchema):
    """Strict view of a ``users`` document.

    Required fields must be present; only ``role`` has a documented default
    (absent means a regular member). The credential hash never leaves the
    store layer.
    """

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    balance: Decimal
    initial_balance: Decimal = Decimal("0")
    role: str = MEMBER_ROLE
    regular_days: Optional[list[int]] = None
    version: int = Field(ge=0)
    created_at: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, value):
        return MEMBER_ROLE if value is None else value

    @field_validator("regular_days")
    @classmethod
    def validate_regular_days(cls, value):
        if value is not None and any(day < 0 or day > 6 for day in value):
            raise ValueError("regular_days must contain weekday numbers 0-6")
        return value

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value):
        return ensure_utc(value)

    @classmethod
    def from_document(cls, document) -> "User":
        """Validate a stored user, failing fast instead of defaulting missing fields."""
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            doc_id = getattr(document, "id", None)
            raise CorruptDocumentError(f"User document {doc_id} violates schema: {e}") from e


class CreateUserRequest(BaseSchema):
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    credential: str = Field(min_length=1)
    initial_balance: Decimal = Decimal("0")
    role: Optional[str] = None
    regular_days: Optional[list[int]] = None


class UpdateCredentialRequest(BaseSchema):
    credential: str = Field(min_length=1)


class BalanceChangeRequest(BaseSchema):
    """Top-up or deduction; ``amount`` is a positive magnitude."""

    amount: Decimal
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)
    user_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)  # Defaults to the directory's current name


class BalanceChangeResponse(BaseSchema):
    user_id: str
    previous_balance: Decimal
    new_balance: Decimal
    transaction_id: str


class BalanceAudit(BaseSchema):
    """Stored balance versus ``initial_balance + sum(transactions)``."""

    user_id: str
    stored_balance: Decimal
    initial_balance: Decimal
    transaction_total: Decimal
    computed_balance: Decimal
    difference: Decimal
    transaction_count: int
    is_consistent: bool
