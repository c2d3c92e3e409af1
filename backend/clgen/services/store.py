# backend/clgen/services/store.py
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clgen.db import WRITE_UNIT, Base, make_engine, make_session_factory
from clgen.errors import StoreFailure
from clgen.models import CoverLetter, Resume
from clgen.services.storage import remove_file

log = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands timestamps back naive
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


@dataclass(frozen=True)
class ResumeRecord:
    id: int
    filename: str
    original_name: str
    file_path: str
    file_size: int
    content: str
    uploaded_at: datetime

    @classmethod
    def from_row(cls, r: Resume) -> "ResumeRecord":
        return cls(
            id=r.id,
            filename=r.filename,
            original_name=r.original_name,
            file_path=r.file_path,
            file_size=r.file_size,
            content=r.content or "",
            uploaded_at=_as_utc(r.uploaded_at),
        )


@dataclass(frozen=True)
class CoverLetterRecord:
    id: int
    job_title: str
    company: str
    job_description: str
    cover_letter_text: str
    pdf_filename: str
    pdf_path: str
    created_at: datetime

    @classmethod
    def from_row(cls, c: CoverLetter) -> "CoverLetterRecord":
        return cls(
            id=c.id,
            job_title=c.job_title,
            company=c.company,
            job_description=c.job_description or "",
            cover_letter_text=c.cover_letter_text,
            pdf_filename=c.pdf_filename,
            pdf_path=c.pdf_path,
            created_at=_as_utc(c.created_at),
        )


class DocumentStore:
    """
    Row store for résumés and cover letters.

    Built once at startup and passed to whoever needs it; ``open()`` creates
    the schema and ``close()`` disposes the engine. Every method is a blocking
    SQLAlchemy unit of work, so async callers go through a threadpool.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine = None
        self._session_factory = None
        # one writer per collection at a time; held only inside a worker thread
        self._resume_lock = threading.Lock()
        self._letter_lock = threading.Lock()

    def open(self) -> None:
        if self._engine is not None:
            return
        self._engine = make_engine(self.database_url)
        self._session_factory = make_session_factory(self._engine)
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to initialise database: {e}") from e
        log.info("Document store opened (%s)", self._engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        log.info("Document store closed")

    @contextmanager
    def _session(self, action: str, write: bool = False) -> Iterator[Session]:
        if self._session_factory is None:
            raise StoreFailure("Document store is not open")
        db: Session = self._session_factory()
        try:
            if write:
                db.connection(execution_options={WRITE_UNIT: True})
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            log.error("Database error while trying to %s: %s", action, e)
            raise StoreFailure(f"Failed to {action}") from e
        finally:
            db.close()

    # ---------- résumés ----------

    def add_resume(
        self,
        *,
        filename: str,
        original_name: str,
        file_path: str,
        file_size: int,
        content: str,
    ) -> ResumeRecord:
        """
        Insert a résumé and prune every other one in the same transaction, so
        exactly the row just inserted survives.
        """
        pruned_paths: List[str] = []
        with self._resume_lock, self._session("save resume", write=True) as db:
            row = Resume(
                filename=filename,
                original_name=original_name,
                file_path=file_path,
                file_size=file_size,
                content=content or "",
            )
            db.add(row)
            db.flush()

            try:
                with db.begin_nested():
                    others = db.execute(
                        select(Resume.id, Resume.file_path).where(Resume.id != row.id)
                    ).all()
                    if others:
                        db.execute(delete(Resume).where(Resume.id != row.id))
                        pruned_paths = [o.file_path for o in others]
            except SQLAlchemyError as e:
                # the new row still commits; old rows are left behind
                log.error("Error deleting old resumes: %s", e)
                pruned_paths = []

            db.commit()
            record = ResumeRecord.from_row(row)

        for path in pruned_paths:
            remove_file(path)
        if pruned_paths:
            log.info("Pruned %d previous resume(s)", len(pruned_paths))
        return record

    def get_latest_resume(self) -> Optional[ResumeRecord]:
        with self._session("retrieve resume") as db:
            row = db.execute(
                select(Resume).order_by(Resume.uploaded_at.desc(), Resume.id.desc()).limit(1)
            ).scalar_one_or_none()
            return ResumeRecord.from_row(row) if row else None

    def get_resume(self, resume_id: int) -> Optional[ResumeRecord]:
        with self._session("retrieve resume") as db:
            row = db.get(Resume, resume_id)
            return ResumeRecord.from_row(row) if row else None

    def list_resumes(self, limit: int = 10) -> List[ResumeRecord]:
        with self._session("retrieve resumes") as db:
            rows = db.execute(
                select(Resume)
                .order_by(Resume.uploaded_at.desc(), Resume.id.desc())
                .limit(limit)
            ).scalars().all()
            return [ResumeRecord.from_row(r) for r in rows]

    def delete_resume(self, resume_id: int) -> bool:
        with self._resume_lock, self._session("delete resume", write=True) as db:
            row = db.get(Resume, resume_id)
            if row is None:
                return False
            path = row.file_path
            db.delete(row)
            db.commit()
        remove_file(path)
        return True

    # ---------- cover letters ----------

    def add_cover_letter(
        self,
        *,
        job_title: str,
        company: str,
        job_description: str,
        cover_letter_text: str,
        pdf_filename: str,
        pdf_path: str,
    ) -> CoverLetterRecord:
        with self._letter_lock, self._session("save cover letter", write=True) as db:
            row = CoverLetter(
                job_title=job_title,
                company=company,
                job_description=job_description or "",
                cover_letter_text=cover_letter_text,
                pdf_filename=pdf_filename,
                pdf_path=pdf_path,
            )
            db.add(row)
            db.commit()
            return CoverLetterRecord.from_row(row)

    def get_latest_cover_letter(self) -> Optional[CoverLetterRecord]:
        with self._session("retrieve cover letter") as db:
            row = db.execute(
                select(CoverLetter)
                .order_by(CoverLetter.created_at.desc(), CoverLetter.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            return CoverLetterRecord.from_row(row) if row else None

    def get_cover_letter(self, letter_id: int) -> Optional[CoverLetterRecord]:
        with self._session("retrieve cover letter") as db:
            row = db.get(CoverLetter, letter_id)
            return CoverLetterRecord.from_row(row) if row else None

    def list_cover_letters(self, limit: int = 10) -> List[CoverLetterRecord]:
        with self._session("retrieve cover letter history") as db:
            rows = db.execute(
                select(CoverLetter)
                .order_by(CoverLetter.created_at.desc(), CoverLetter.id.desc())
                .limit(limit)
            ).scalars().all()
            return [CoverLetterRecord.from_row(r) for r in rows]

    def delete_cover_letter(self, letter_id: int) -> bool:
        with self._letter_lock, self._session("delete cover letter", write=True) as db:
            row = db.get(CoverLetter, letter_id)
            if row is None:
                return False
            path = row.pdf_path
            db.delete(row)
            db.commit()
        remove_file(path)
        return True
