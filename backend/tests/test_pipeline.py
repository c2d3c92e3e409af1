import asyncio
import re

import httpx
import pytest

from clgen.errors import (
    GenerationUnavailable,
    InvalidFormat,
    NotFoundError,
    RenderFailure,
    StoreFailure,
    TooLarge,
    ValidationError,
)
from clgen.services.cover_letter import LetterGenerator
from clgen.services.extraction import DocumentFormat
from clgen.services.pipeline import CoverLetterPipeline, PipelineStage
from clgen.services.store import DocumentStore

from conftest import FakeLLM, LETTER_TEXT, letter_files, make_docx, make_pdf, make_word97


async def _upload(pipeline, data=None, name="resume.docx", fmt=DocumentFormat.DOCX):
    data = data if data is not None else make_docx("Jane Doe", "Python, SQL")
    return await pipeline.upload_resume(data, name, fmt.value, len(data))


@pytest.mark.asyncio
async def test_upload_stores_extracted_text(pipeline, settings):
    out = await _upload(pipeline, make_pdf("MARKER-UPLOAD-1"), "cv.pdf", DocumentFormat.PDF)

    assert out["originalName"] == "cv.pdf"
    assert re.fullmatch(r"resume-\d+-\d+\.pdf", out["filename"])
    assert (settings.uploads_dir / out["filename"]).exists()

    latest = await pipeline.get_latest_resume()
    assert latest.id == out["id"]
    assert "MARKER-UPLOAD-1" in latest.content


@pytest.mark.asyncio
async def test_upload_unreadable_file_still_stored(pipeline):
    out = await _upload(pipeline, b"garbage" * 50, "broken.pdf", DocumentFormat.PDF)
    latest = await pipeline.get_latest_resume()
    assert latest.id == out["id"]
    assert latest.content == ""


@pytest.mark.asyncio
async def test_upload_b_replaces_a(pipeline, settings):
    a = await _upload(pipeline, make_docx("resume A"), "a.docx")
    b = await _upload(pipeline, make_docx("resume B"), "b.docx")

    latest = await pipeline.get_latest_resume()
    assert latest.id == b["id"]
    assert "resume B" in latest.content
    assert not (settings.uploads_dir / a["filename"]).exists()
    assert sorted(p.name for p in settings.uploads_dir.glob("resume-*")) == [b["filename"]]


@pytest.mark.asyncio
async def test_upload_rejects_bad_format(pipeline, settings):
    with pytest.raises(InvalidFormat):
        await pipeline.upload_resume(b"hello", "notes.txt", "text/plain", 5)
    assert not settings.uploads_dir.exists() or not any(settings.uploads_dir.iterdir())


@pytest.mark.asyncio
async def test_upload_rejects_too_large(pipeline, settings):
    with pytest.raises(TooLarge):
        await pipeline.upload_resume(b"x", "big.pdf", "application/pdf", 5 * 1024 * 1024 + 1)
    with pytest.raises(NotFoundError):
        await pipeline.get_latest_resume()


@pytest.mark.asyncio
@pytest.mark.parametrize("title,company", [("", "Acme Corp"), ("Software Engineer", ""), ("  ", None)])
async def test_generate_requires_title_and_company(pipeline, settings, fake_llm, title, company):
    await _upload(pipeline)
    with pytest.raises(ValidationError) as ei:
        await pipeline.generate_cover_letter(title, company, "Build things")
    assert ei.value.stage == PipelineStage.VALIDATING.value
    assert fake_llm.calls == []
    assert await pipeline.get_cover_letter_history() == []
    assert letter_files(settings.uploads_dir) == []


@pytest.mark.asyncio
async def test_generate_without_resume_is_not_found(pipeline, fake_llm):
    with pytest.raises(NotFoundError) as ei:
        await pipeline.generate_cover_letter("Software Engineer", "Acme Corp", "Build things")
    assert ei.value.stage == PipelineStage.FETCHING_RESUME.value
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_generate_success(pipeline, settings, fake_llm):
    await _upload(pipeline, make_docx("Jane Doe", "MARKER-PROMPT-99"))

    out = await pipeline.generate_cover_letter("Software Engineer", "Acme Corp", "Build things")

    assert out["coverLetter"] == LETTER_TEXT
    assert out["jobTitle"] == "Software Engineer"
    assert out["company"] == "Acme Corp"
    assert re.fullmatch(r"/uploads/cover-letter-Acme-Corp-\d+\.pdf", out["pdfUrl"])

    files = letter_files(settings.uploads_dir)
    assert len(files) == 1
    assert out["pdfUrl"].endswith(files[0])

    history = await pipeline.get_cover_letter_history()
    assert len(history) == 1
    assert history[0].id == out["id"]
    assert history[0].job_description == "Build things"

    prompt = fake_llm.calls[0][1]["content"]
    assert "MARKER-PROMPT-99" in prompt
    assert "Build things" in prompt


@pytest.mark.asyncio
async def test_generation_failure_persists_nothing(settings, store):
    llm = FakeLLM(exc=httpx.ConnectError("boom"))
    pipeline = CoverLetterPipeline(settings, store, LetterGenerator(llm))
    await _upload(pipeline)

    with pytest.raises(GenerationUnavailable) as ei:
        await pipeline.generate_cover_letter("Software Engineer", "Acme Corp")
    assert ei.value.stage == PipelineStage.GENERATING.value
    assert await pipeline.get_cover_letter_history() == []
    assert letter_files(settings.uploads_dir) == []


class _BrokenRenderer:
    def render(self, letter_text, job_title, company):
        raise RenderFailure("disk full")


@pytest.mark.asyncio
async def test_render_failure_persists_nothing(settings, store, fake_llm):
    pipeline = CoverLetterPipeline(settings, store, LetterGenerator(fake_llm), _BrokenRenderer())
    await _upload(pipeline)

    with pytest.raises(RenderFailure) as ei:
        await pipeline.generate_cover_letter("Software Engineer", "Acme Corp")
    assert ei.value.stage == PipelineStage.RENDERING.value
    assert await pipeline.get_cover_letter_history() == []


@pytest.mark.asyncio
async def test_delete_cover_letter(pipeline, settings):
    await _upload(pipeline)
    out = await pipeline.generate_cover_letter("Software Engineer", "Acme Corp")
    letter = await pipeline.get_cover_letter(out["id"])
    assert settings.uploads_dir.joinpath(letter.pdf_filename).exists()

    await pipeline.delete_cover_letter(out["id"])

    with pytest.raises(NotFoundError):
        await pipeline.get_cover_letter(out["id"])
    assert not settings.uploads_dir.joinpath(letter.pdf_filename).exists()
    with pytest.raises(NotFoundError):
        await pipeline.delete_cover_letter(out["id"])


@pytest.mark.asyncio
async def test_history_is_bounded(pipeline):
    await _upload(pipeline)
    ids = []
    for i in range(12):
        out = await pipeline.generate_cover_letter(f"Role {i}", "Acme Corp")
        ids.append(out["id"])

    history = await pipeline.get_cover_letter_history()
    assert [h.id for h in history] == list(reversed(ids))[:10]


@pytest.mark.asyncio
async def test_delete_resume(pipeline):
    out = await _upload(pipeline)
    await pipeline.delete_resume(out["id"])
    with pytest.raises(NotFoundError):
        await pipeline.get_latest_resume()
    with pytest.raises(NotFoundError):
        await pipeline.delete_resume(out["id"])


@pytest.mark.asyncio
async def test_upload_word97_doc(pipeline):
    data = make_word97("Jane Doe\rMARKER-UPLOAD-DOC97")
    await _upload(pipeline, data, "legacy.doc", DocumentFormat.DOC)
    latest = await pipeline.get_latest_resume()
    assert "MARKER-UPLOAD-DOC97" in latest.content


def test_check_upload_before_reading(pipeline):
    assert pipeline.check_upload("cv.pdf", "application/pdf", None) is DocumentFormat.PDF
    assert pipeline.check_upload("cv.doc", "application/octet-stream", 10) is DocumentFormat.DOC
    with pytest.raises(InvalidFormat):
        pipeline.check_upload("cv.txt", "text/plain", 10)
    with pytest.raises(TooLarge):
        pipeline.check_upload("cv.pdf", "application/pdf", 5 * 1024 * 1024 + 1)


@pytest.mark.asyncio
async def test_concurrent_uploads_leave_one_resume(pipeline, store, settings):
    outs = await asyncio.gather(
        *(_upload(pipeline, make_docx(f"resume {i}"), f"r{i}.docx") for i in range(12))
    )
    assert len(outs) == 12

    rows = store.list_resumes()
    assert len(rows) == 1
    latest = await pipeline.get_latest_resume()
    assert rows[0].id == latest.id
    files = sorted(p.name for p in settings.uploads_dir.glob("resume-*"))
    assert files == [latest.filename]


class _FailingStore(DocumentStore):
    def add_cover_letter(self, **kwargs):
        raise StoreFailure("Failed to save cover letter")


@pytest.mark.asyncio
async def test_persist_failure_removes_artifact(settings, fake_llm):
    store = _FailingStore(settings.database_url)
    store.open()
    try:
        pipeline = CoverLetterPipeline(settings, store, LetterGenerator(fake_llm))
        await _upload(pipeline)

        with pytest.raises(StoreFailure) as ei:
            await pipeline.generate_cover_letter("Software Engineer", "Acme Corp")
        assert ei.value.stage == PipelineStage.PERSISTING.value == "persisting"
        assert letter_files(settings.uploads_dir) == []
        assert await pipeline.get_cover_letter_history() == []
    finally:
        store.close()


@pytest.mark.asyncio
async def test_history_never_exceeds_ten(settings, store, fake_llm):
    pipeline = CoverLetterPipeline(
        settings.model_copy(update={"history_limit": 50}), store, LetterGenerator(fake_llm)
    )
    for i in range(12):
        store.add_cover_letter(
            job_title=f"Role {i}",
            company="Acme Corp",
            job_description="",
            cover_letter_text=f"letter {i}",
            pdf_filename=f"cover-letter-Acme-Corp-{i}.pdf",
            pdf_path=f"/nonexistent/cover-letter-Acme-Corp-{i}.pdf",
        )

    history = await pipeline.get_cover_letter_history()
    assert len(history) == 10
    assert history[0].job_title == "Role 11"
