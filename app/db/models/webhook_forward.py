"""
Forward Attempt Model - תיעוד ניסיון העברה ליעד ברירת המחדל

נכתב ע"י שירות ההעברה בלבד, ב-session נפרד מזה של הבקשה.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index

from app.db.database import Base


class ForwardAttempt(Base):
    """Outcome of one forwarding attempt"""

    __tablename__ = "webhook_forwards"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    webhook_id = Column(
        String(36),
        ForeignKey("webhooks.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_url = Column(String(2048), nullable=False)
    success = Column(Boolean, nullable=False, default=False)
    status_code = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_webhook_forwards_webhook_id", "webhook_id"),
    )
