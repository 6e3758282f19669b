"""Transaction ledger model."""
from sqlalchemy import Column, String, DateTime, Index

from shuttle_wallet.database import Base
from shuttle_wallet.models.base import get_id_column, get_money_column, new_document_id


class TransactionDocument(Base):
    """Append-only balance event.

    ``user_id`` deliberately has no foreign key: deleting a user leaves its
    history in place as orphaned records.
    """
    __tablename__ = "transactions"

    id = get_id_column(primary_key=True, default=new_document_id)
    user_id = get_id_column(nullable=False, index=True)
    user_name = Column(String(100), nullable=False)  # Snapshot at commit time
    amount = get_money_column(nullable=False)  # Negative for deductions, positive for top-ups
    description = Column(String(255), nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        Index("ix_transactions_user_timestamp", "user_id", "timestamp"),
    )

    def __repr__(self):
        return f"<TransactionDocument(id={self.id}, user_id={self.user_id}, amount={self.amount})>"
