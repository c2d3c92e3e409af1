# config.py
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

import clgen.env  # noqa: F401  (loads .env before the defaults below are read)


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default) or ""
    return [s.strip() for s in raw.split(",") if s.strip()]


class Settings(BaseModel):
    env: str = os.getenv("ENV", "dev")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.sqlite")
    uploads_dir: Path = Path(os.getenv("UPLOADS_DIR", "./uploads"))
    groq_api_key: Optional[str] = os.getenv("GROQ_API_KEY")
    groq_model: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    groq_api_url: str = os.getenv("GROQ_API_URL", "https://api.groq.com/openai/v1/chat/completions")
    llm_timeout_secs: float = float(os.getenv("LLM_TIMEOUT_SECS", "90"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))  # 5MB
    history_limit: int = int(os.getenv("HISTORY_LIMIT", "10"))
    cors_origins: List[str] = _env_list("CORS_ORIGINS", "*")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
