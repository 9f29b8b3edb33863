from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UploadRecord(Base):
    """
    Metadata of one stored upload, keyed by its generated name.
    """
    __tablename__ = "upload_records"
    stored_name = Column(String, primary_key=True, index=True)
    original_name = Column(String, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)
    uploaded_at = Column(DateTime, default=_utcnow, nullable=False)
