# backend/clgen/routers/resume.py
from fastapi import APIRouter, Depends, File, UploadFile

from clgen.deps import get_pipeline
from clgen.schemas import ResumeDetail
from clgen.services.pipeline import CoverLetterPipeline

router = APIRouter(prefix="/resume", tags=["resume"])


@router.post("/upload")
async def upload_resume(
    resume: UploadFile = File(...),
    pipeline: CoverLetterPipeline = Depends(get_pipeline),
):
    name = resume.filename or ""
    # reject from the declared size before pulling the body into memory
    pipeline.check_upload(name, resume.content_type, resume.size)
    data = await resume.read(pipeline.cfg.max_upload_bytes + 1)
    out = await pipeline.upload_resume(
        data,
        original_name=name,
        content_type=resume.content_type,
        size=max(resume.size or 0, len(data)),
    )
    return {"success": True, "message": "Resume uploaded successfully", "data": out}


@router.get("/latest")
async def latest_resume(pipeline: CoverLetterPipeline = Depends(get_pipeline)):
    r = await pipeline.get_latest_resume()
    detail = ResumeDetail(
        id=r.id,
        filename=r.filename,
        original_name=r.original_name,
        file_size=r.file_size,
        content=r.content,
        uploaded_at=r.uploaded_at,
    )
    return {"success": True, "data": detail.model_dump(mode="json", by_alias=True)}


@router.delete("/{resume_id}")
async def delete_resume(resume_id: int, pipeline: CoverLetterPipeline = Depends(get_pipeline)):
    await pipeline.delete_resume(resume_id)
    return {"success": True, "message": "Resume deleted successfully"}
