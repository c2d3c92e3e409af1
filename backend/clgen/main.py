import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from clgen.config import Settings, settings as default_settings
from clgen.env import log_env_summary, mask
from clgen.errors import ClgenError
from clgen.routers import cover_letters, resume
from clgen.services.cover_letter import LetterGenerator
from clgen.services.llm_groq import GroqLLM
from clgen.services.pipeline import CoverLetterPipeline
from clgen.services.store import DocumentStore

log = logging.getLogger(__name__)


def create_app(cfg: Optional[Settings] = None, generator: Optional[LetterGenerator] = None) -> FastAPI:
    cfg = cfg or default_settings
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="CLGEN - AI Cover Letter Generator", version="1.0.0")
    app.state.settings = cfg
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins, allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )
    app.include_router(resume.router)
    app.include_router(cover_letters.router)
    app.mount("/uploads", StaticFiles(directory=cfg.uploads_dir, check_dir=False), name="uploads")

    @app.on_event("startup")
    async def _startup():
        log_env_summary()
        log.info("[startup] GROQ_API_KEY: %s | model: %s", mask(cfg.groq_api_key), cfg.groq_model)
        cfg.uploads_dir.mkdir(parents=True, exist_ok=True)
        store = DocumentStore(cfg.database_url)
        store.open()
        app.state.store = store
        app.state.pipeline = CoverLetterPipeline(
            cfg,
            store,
            generator or LetterGenerator(GroqLLM(cfg=cfg), temperature=cfg.llm_temperature),
        )

    @app.on_event("shutdown")
    async def _shutdown():
        store = getattr(app.state, "store", None)
        if store is not None:
            store.close()

    @app.exception_handler(ClgenError)
    async def _clgen_error(request: Request, exc: ClgenError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "ValidationError", "message": str(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "InternalError", "message": "Internal server error"},
        )

    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "message": "CLGEN Backend is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/")
    def root():
        return {
            "message": "CLGEN - AI Cover Letter Generator Backend",
            "version": "1.0.0",
            "endpoints": {
                "health": "/health",
                "resume": {
                    "upload": "POST /resume/upload",
                    "latest": "GET /resume/latest",
                    "delete": "DELETE /resume/{id}",
                },
                "coverLetter": {
                    "generate": "POST /cover-letter/generate",
                    "history": "GET /cover-letter/history",
                    "get": "GET /cover-letter/{id}",
                    "delete": "DELETE /cover-letter/{id}",
                },
            },
        }

    return app


app = create_app()
