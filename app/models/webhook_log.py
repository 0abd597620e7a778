from sqlalchemy import Column, Date, DateTime, Integer, JSON, String, Text, UniqueConstraint

from app.core.db import Base
from app.models.user import _utcnow


class WebhookLog(Base):
    """
    One audit row per (external user, payload type, document version).
    Redeliveries update the row in place.
    """

    __tablename__ = "webhook_logs"
    __table_args__ = (
        UniqueConstraint(
            "rook_user_id",
            "type",
            "document_version",
            name="uq_webhook_log_user_type_version",
        ),
    )

    id = Column(Integer, primary_key=True)

    rook_user_id = Column(String(128), nullable=False)
    type = Column(String(64), nullable=False)
    document_version = Column(Text, nullable=False)

    data_date = Column(Date)
    status = Column(String(32), nullable=False)  # success / error / not_processed
    error_message = Column(Text)
    raw_payload = Column(JSON)

    processed_at = Column(DateTime(timezone=True), default=_utcnow)
