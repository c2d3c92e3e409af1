# backend/clgen/services/renderer.py
"""Lay out generated letter text as a one-flow US Letter PDF."""
from __future__ import annotations

import logging
import re
import threading
import time
from datetime import date
from pathlib import Path
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from clgen.errors import RenderFailure
from clgen.services.storage import remove_file

log = logging.getLogger(__name__)

# --- Page geometry ---
MARGIN = 50  # points, all four sides
FONT_SIZE = 12
LEADING = FONT_SIZE + 2  # lineGap of 2
LINE = LEADING  # one "moveDown"

HEADER_STYLE = ParagraphStyle(
    "Header", fontName="Helvetica-Bold", fontSize=16, leading=20, alignment=TA_CENTER
)
BODY_STYLE = ParagraphStyle(
    "Body", fontName="Helvetica", fontSize=FONT_SIZE, leading=LEADING, alignment=TA_LEFT
)
PARAGRAPH_STYLE = ParagraphStyle(
    "LetterParagraph", parent=BODY_STYLE, alignment=TA_JUSTIFY, spaceAfter=LINE * 0.5
)

_ts_lock = threading.Lock()
_last_ts = 0


def _unique_timestamp() -> int:
    """Milliseconds since the epoch, strictly increasing within this process."""
    global _last_ts
    with _ts_lock:
        ts = max(int(time.time() * 1000), _last_ts + 1)
        _last_ts = ts
        return ts


def company_token(company: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", company)


def artifact_filename(company: str) -> str:
    return f"cover-letter-{company_token(company)}-{_unique_timestamp()}.pdf"


def split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in (text or "").split("\n\n") if p.strip()]


def long_date(d: Optional[date] = None) -> str:
    d = d or date.today()
    return f"{d:%B} {d.day}, {d.year}"


def _para(text: str, style: ParagraphStyle) -> Paragraph:
    # Paragraph takes mini-markup; keep single newlines as line breaks
    return Paragraph(escape(text).replace("\n", "<br/>"), style)


def build_story(letter_text: str, company: str, today: Optional[date] = None) -> list:
    story = [
        _para("COVER LETTER", HEADER_STYLE),
        Spacer(1, LINE * 0.5),
        _para(long_date(today), BODY_STYLE),
        Spacer(1, LINE),
        _para("Hiring Manager", BODY_STYLE),
        _para(company, BODY_STYLE),
        Spacer(1, LINE),
        _para("Dear Hiring Manager,", BODY_STYLE),
        Spacer(1, LINE * 0.5),
    ]
    story.extend(_para(p, PARAGRAPH_STYLE) for p in split_paragraphs(letter_text))
    story += [
        Spacer(1, LINE * 0.5),
        _para("Sincerely,", BODY_STYLE),
        Spacer(1, LINE),
        _para("[Your Name]", BODY_STYLE),
        Spacer(1, LINE * 0.5),
        _para("[Your Email]", BODY_STYLE),
        _para("[Your Phone]", BODY_STYLE),
    ]
    return story


class LetterRenderer:
    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def render(self, letter_text: str, job_title: str, company: str) -> Tuple[str, str]:
        """
        Write the PDF and return (filename, path). Any failure removes the
        partial file and raises RenderFailure.
        """
        filename = artifact_filename(company)
        path = self.output_dir / filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as fh:
                doc = SimpleDocTemplate(
                    fh,
                    pagesize=LETTER,
                    leftMargin=MARGIN,
                    rightMargin=MARGIN,
                    topMargin=MARGIN,
                    bottomMargin=MARGIN,
                    title=f"Cover Letter - {job_title} at {company}",
                )
                doc.build(build_story(letter_text, company))
        except Exception as e:
            log.error("PDF generation failed for %s: %s", filename, e)
            remove_file(str(path))
            raise RenderFailure(f"Failed to render cover letter PDF: {e}") from e
        log.info("Rendered %s", path)
        return filename, str(path)
