# backend/clgen/services/pipeline.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from clgen.config import Settings
from clgen.errors import ClgenError, InvalidFormat, NotFoundError, TooLarge, ValidationError
from clgen.services.cover_letter import LetterGenerator
from clgen.services.extraction import DocumentFormat, extract
from clgen.services.renderer import LetterRenderer
from clgen.services.storage import remove_file, save_upload
from clgen.services.store import CoverLetterRecord, DocumentStore, ResumeRecord

log = logging.getLogger(__name__)

HISTORY_MAX = 10


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    FETCHING_RESUME = "fetching_resume"
    GENERATING = "generating"
    RENDERING = "rendering"
    PERSISTING = "persisting"
    DONE = "done"
    ERROR = "error"


def artifact_reference(filename: str) -> str:
    return f"/uploads/{filename}"


class _Run:
    """Tracks one generation request through its stages."""

    def __init__(self, company: str):
        self.company = company
        self.stage = PipelineStage.VALIDATING
        log.info("[cover-letter] %s: %s", company or "<none>", self.stage.value)

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        log.info("[cover-letter] %s: %s", self.company, stage.value)

    def fail(self, err: ClgenError) -> ClgenError:
        err.stage = self.stage.value
        log.warning(
            "[cover-letter] %s: failed at %s (%s: %s)",
            self.company or "<none>", self.stage.value, err.category, err.message,
        )
        self.stage = PipelineStage.ERROR
        return err


class CoverLetterPipeline:
    def __init__(
        self,
        cfg: Settings,
        store: DocumentStore,
        generator: LetterGenerator,
        renderer: Optional[LetterRenderer] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.generator = generator
        self.renderer = renderer or LetterRenderer(cfg.uploads_dir)

    # ---------- résumés ----------

    def check_upload(self, original_name: str, content_type: Optional[str], size: Optional[int]) -> DocumentFormat:
        """Reject bad uploads before any bytes are read or written."""
        fmt = DocumentFormat.from_declared(content_type, original_name)
        if not fmt.supported:
            raise InvalidFormat("Invalid file type. Only PDF, DOC, and DOCX files are allowed.")
        if size is not None and size > self.cfg.max_upload_bytes:
            raise TooLarge(f"File size too large. Maximum size is {self.cfg.max_upload_bytes // (1024 * 1024)}MB.")
        return fmt

    async def upload_resume(
        self,
        data: bytes,
        original_name: str,
        content_type: Optional[str],
        size: Optional[int] = None,
    ) -> Dict[str, Any]:
        size = len(data) if size is None else size
        fmt = self.check_upload(original_name, content_type, size)

        filename, path = await save_upload(self.cfg.uploads_dir, original_name, data)
        content = await run_in_threadpool(extract, data, fmt)
        try:
            record = await run_in_threadpool(
                self.store.add_resume,
                filename=filename,
                original_name=original_name,
                file_path=path,
                file_size=size,
                content=content,
            )
        except ClgenError:
            remove_file(path)
            raise
        log.info("Stored resume %s (%s, %d bytes, %d chars)", record.id, fmt.name, size, len(content))
        return {
            "id": record.id,
            "filename": record.filename,
            "originalName": record.original_name,
            "fileSize": record.file_size,
            "uploadedAt": record.uploaded_at.isoformat(),
        }

    async def get_latest_resume(self) -> ResumeRecord:
        record = await run_in_threadpool(self.store.get_latest_resume)
        if record is None:
            raise NotFoundError("No resume found")
        return record

    async def delete_resume(self, resume_id: int) -> None:
        if not await run_in_threadpool(self.store.delete_resume, resume_id):
            raise NotFoundError("Resume not found")

    # ---------- cover letters ----------

    async def generate_cover_letter(
        self, job_title: Optional[str], company: Optional[str], job_description: Optional[str] = ""
    ) -> Dict[str, Any]:
        job_title = (job_title or "").strip()
        company = (company or "").strip()
        job_description = job_description or ""
        run = _Run(company)

        if not job_title or not company:
            raise run.fail(ValidationError("Job title and company are required"))

        try:
            run.advance(PipelineStage.FETCHING_RESUME)
            resume = await run_in_threadpool(self.store.get_latest_resume)
            if resume is None:
                raise NotFoundError("No resume found. Please upload a resume first.")

            run.advance(PipelineStage.GENERATING)
            text = await self.generator.generate(resume.content, job_title, company, job_description)

            run.advance(PipelineStage.RENDERING)
            filename, path = await run_in_threadpool(self.renderer.render, text, job_title, company)

            run.advance(PipelineStage.PERSISTING)
            try:
                record = await run_in_threadpool(
                    self.store.add_cover_letter,
                    job_title=job_title,
                    company=company,
                    job_description=job_description,
                    cover_letter_text=text,
                    pdf_filename=filename,
                    pdf_path=path,
                )
            except ClgenError:
                remove_file(path)  # orphaned artifact
                raise
        except ClgenError as e:
            raise run.fail(e)

        run.advance(PipelineStage.DONE)
        return {
            "id": record.id,
            "coverLetter": record.cover_letter_text,
            "pdfUrl": artifact_reference(record.pdf_filename),
            "jobTitle": record.job_title,
            "company": record.company,
            "createdAt": record.created_at.isoformat(),
        }

    async def get_cover_letter_history(self) -> List[CoverLetterRecord]:
        return await run_in_threadpool(self.store.list_cover_letters, min(self.cfg.history_limit, HISTORY_MAX))

    async def get_cover_letter(self, letter_id: int) -> CoverLetterRecord:
        record = await run_in_threadpool(self.store.get_cover_letter, letter_id)
        if record is None:
            raise NotFoundError("Cover letter not found")
        return record

    async def delete_cover_letter(self, letter_id: int) -> None:
        if not await run_in_threadpool(self.store.delete_cover_letter, letter_id):
            raise NotFoundError("Cover letter not found")
