"""
Quota counter model.

One row per counter key. Keys carry their window in the name
(``ratelimit:{model}:{metric}:{window_id}``, ``search:usage:{YYYY-MM}``), so a
new window always starts a new row and stale windows are never reused.
"""

from sqlalchemy import BigInteger, Column, Index, String

from ..db.base import Base
from .base import TimestampMixin


class QuotaCounter(Base, TimestampMixin):
    """An integer counter with an optional absolute expiry."""

    __tablename__ = "quota_counters"

    key = Column(String(255), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)

    # Epoch milliseconds; NULL never expires
    expires_at_ms = Column(BigInteger, nullable=True)

    __table_args__ = (Index("idx_quota_counters_expires", "expires_at_ms"),)

    def __repr__(self):
        return f"<QuotaCounter(key={self.key}, value={self.value}, expires_at_ms={self.expires_at_ms})>"
