"""
Webhook Attachment Model - קבצים שהועלו עם webhook מסוג multipart
"""
import uuid

from sqlalchemy import Column, String, Integer, DateTime, LargeBinary, ForeignKey
from sqlalchemy.orm import relationship

from app.db.database import Base


class WebhookAttachment(Base):
    """File uploaded together with a captured webhook"""

    __tablename__ = "webhook_attachments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    webhook_id = Column(
        String(36),
        ForeignKey("webhooks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_name = Column(String(255), nullable=False)
    filename = Column(String(512), nullable=True)
    content_type = Column(String(255), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    content = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    webhook = relationship("Webhook", back_populates="attachments")
