"""User (wallet holder) model."""
from decimal import Decimal

from sqlalchemy import Column, String, Integer, DateTime, JSON

from shuttle_wallet.database import Base
from shuttle_wallet.models.base import get_id_column, get_money_column, new_document_id, utc_now


class UserDocument(Base):
    """One wallet holder; ``balance`` is only written by the ledger store."""
    __tablename__ = "users"

    id = get_id_column(primary_key=True, default=new_document_id)
    name = Column(String(100), nullable=False, index=True)
    balance = get_money_column(nullable=False, default=Decimal("0"))
    initial_balance = get_money_column(nullable=False, default=Decimal("0"))
    credential_hash = Column(String(255), nullable=False)
    role = Column(String(30), nullable=True)  # None means regular member
    regular_days = Column(JSON, nullable=True)  # Weekday numbers, Monday = 0
    version = Column(Integer, nullable=False, default=0)  # Bumped on every balance write
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<UserDocument(id={self.id}, name={self.name}, balance={self.balance})>"
