from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Integer, DateTime

from clgen.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Resume(Base):
    __tablename__ = "resumes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    file_path = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False)
    content = Column(Text, nullable=False, default="")
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class CoverLetter(Base):
    __tablename__ = "cover_letters"
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_title = Column(String, nullable=False)
    company = Column(String, nullable=False)
    job_description = Column(Text, nullable=False, default="")
    cover_letter_text = Column(Text, nullable=False)
    pdf_filename = Column(String, nullable=False)
    pdf_path = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
