# backend/clgen/env.py
from __future__ import annotations

import logging
from os import environ as env
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

log = logging.getLogger(__name__)


def _find_dotenv_path() -> str:
    """CWD and its parents first, then repo-root/.env (backend/../.env)."""
    found = find_dotenv(usecwd=True)
    if found:
        return found
    candidate = Path(__file__).resolve().parents[2] / ".env"
    return str(candidate) if candidate.exists() else ""


dotenv_path = _find_dotenv_path()
# load once at import; never override the real environment
load_dotenv(dotenv_path or None, override=False)


def mask(val: str | None) -> str:
    if not val:
        return "<missing>"
    if len(val) <= 8:
        return "********"
    return f"{val[:4]}…{val[-4:]}"


def log_env_summary() -> None:
    log.info(
        "[env] .env loaded from: %s | GROQ_API_KEY: %s",
        dotenv_path or "<none>",
        mask(env.get("GROQ_API_KEY")),
    )


__all__ = ["env", "mask", "log_env_summary"]
