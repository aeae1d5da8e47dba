"""
Webhook Model - רשומת webhook שנלכדה

כל קריאה נכנסת שלא מופנית ל-API הפנימי נשמרת כאן פעם אחת, עם ה-host
(tenant) שלה. רשומות לא מתעדכנות אחרי יצירה: רק נמחקות במחיקה גורפת
לפי host או לכל ה-hosts.
"""
import uuid

from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import relationship

from app.db.database import Base


def generate_webhook_id() -> str:
    return str(uuid.uuid4())


class Webhook(Base):
    """Captured webhook event"""

    __tablename__ = "webhooks"

    id = Column(String(36), primary_key=True, default=generate_webhook_id)
    host = Column(String(255), nullable=False, index=True)
    path = Column(String(2048), nullable=False)
    method = Column(String(10), nullable=False, default="POST")

    # JSON שרירותי: object / array / string / number / null
    body = Column(JSON(none_as_null=True), nullable=True)
    # שמות headers תמיד באותיות קטנות
    headers = Column(JSON, nullable=False, default=dict)
    ip = Column(String(64), nullable=True)

    # נקבע ע"י ה-store בלבד, UTC
    created_at = Column(DateTime(timezone=True), nullable=False)

    attachments = relationship(
        "WebhookAttachment",
        back_populates="webhook",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="WebhookAttachment.created_at",
    )

    __table_args__ = (
        Index("ix_webhooks_host_created", "host", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Webhook {self.id} host={self.host} path={self.path}>"
