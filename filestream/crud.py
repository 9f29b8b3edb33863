from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from filestream import models


def get_upload_record(db: Session, stored_name: str) -> Optional[models.UploadRecord]:
    return db.query(models.UploadRecord).filter(models.UploadRecord.stored_name == stored_name).first()


def list_upload_records(db: Session) -> Dict[str, models.UploadRecord]:
    return {record.stored_name: record for record in db.query(models.UploadRecord).all()}


def create_upload_record(
    db: Session,
    stored_name: str,
    original_name: str,
    size_bytes: int,
    mime_type: str,
    uploaded_at: datetime,
) -> models.UploadRecord:
    record = models.UploadRecord(
        stored_name=stored_name,
        original_name=original_name,
        size_bytes=size_bytes,
        mime_type=mime_type,
        uploaded_at=uploaded_at,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def delete_upload_record(db: Session, stored_name: str) -> bool:
    deleted = db.query(models.UploadRecord).filter(models.UploadRecord.stored_name == stored_name).delete()
    db.commit()
    return deleted > 0


def delete_upload_records(db: Session, stored_names: List[str]) -> int:
    if not stored_names:
        return 0
    deleted = (
        db.query(models.UploadRecord)
        .filter(models.UploadRecord.stored_name.in_(stored_names))
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
