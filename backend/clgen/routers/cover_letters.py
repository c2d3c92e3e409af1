# backend/clgen/routers/cover_letters.py
from fastapi import APIRouter, Depends

from clgen.deps import get_pipeline
from clgen.schemas import CoverLetterDetail, CoverLetterRequest, CoverLetterSummary
from clgen.services.pipeline import CoverLetterPipeline, artifact_reference

router = APIRouter(prefix="/cover-letter", tags=["cover-letter"])


@router.post("/generate")
async def generate(req: CoverLetterRequest, pipeline: CoverLetterPipeline = Depends(get_pipeline)):
    out = await pipeline.generate_cover_letter(
        job_title=req.job_title,
        company=req.company,
        job_description=req.job_description,
    )
    return {"success": True, "message": "Cover letter generated successfully", "data": out}


@router.get("/history")
async def history(pipeline: CoverLetterPipeline = Depends(get_pipeline)):
    rows = await pipeline.get_cover_letter_history()
    return {
        "success": True,
        "data": [
            CoverLetterSummary(
                id=r.id,
                job_title=r.job_title,
                company=r.company,
                pdf_url=artifact_reference(r.pdf_filename),
                created_at=r.created_at,
            ).model_dump(mode="json", by_alias=True)
            for r in rows
        ],
    }


@router.get("/{letter_id}")
async def get_cover_letter(letter_id: int, pipeline: CoverLetterPipeline = Depends(get_pipeline)):
    r = await pipeline.get_cover_letter(letter_id)
    detail = CoverLetterDetail(
        id=r.id,
        job_title=r.job_title,
        company=r.company,
        job_description=r.job_description,
        cover_letter=r.cover_letter_text,
        pdf_url=artifact_reference(r.pdf_filename),
        created_at=r.created_at,
    )
    return {"success": True, "data": detail.model_dump(mode="json", by_alias=True)}


@router.delete("/{letter_id}")
async def delete_cover_letter(letter_id: int, pipeline: CoverLetterPipeline = Depends(get_pipeline)):
    await pipeline.delete_cover_letter(letter_id)
    return {"success": True, "message": "Cover letter deleted successfully"}
