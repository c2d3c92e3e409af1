# backend/clgen/services/storage.py
from __future__ import annotations

import logging
import os
import random
import time
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

log = logging.getLogger(__name__)


def resume_filename(original_name: str) -> str:
    """resume-<ms>-<9 random digits><ext>, keeping the uploaded extension."""
    ext = os.path.splitext(original_name or "")[1].lower()
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9 - 1)}"
    return f"resume-{unique_suffix}{ext}"


async def save_upload(uploads_dir: Path, original_name: str, data: bytes) -> Tuple[str, str]:
    uploads_dir.mkdir(parents=True, exist_ok=True)
    filename = resume_filename(original_name)
    path = uploads_dir / filename
    async with aiofiles.open(path, "wb") as fh:
        await fh.write(data)
    return filename, str(path)


def remove_file(path: Optional[str]) -> bool:
    """
    Best-effort unlink. A file that is already gone is not an error.
    Returns True when a file was actually removed.
    """
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        log.warning("Could not remove %s: %s", path, e)
        return False
