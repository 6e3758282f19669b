"""Transaction schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import Field, ValidationError, field_validator

from shuttle_wallet.schemas.base import BaseSchema
from shuttle_wallet.utils.datetime_helpers import ensure_utc
from shuttle_wallet.utils.exceptions import CorruptDocumentError


class Transaction(BaseSchema):
    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    user_name: str
    amount: Decimal
    description: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value):
        return ensure_utc(value)

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    @classmethod
    def from_document(cls, document) -> "Transaction":
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            doc_id = getattr(document, "id", None)
            raise CorruptDocumentError(f"Transaction document {doc_id} violates schema: {e}") from e


class TransactionListResponse(BaseSchema):
    transactions: list[Transaction]
    count: int
