import io
import struct
from pathlib import Path

import pytest
from docx import Document
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from clgen.config import Settings
from clgen.services.cover_letter import LetterGenerator
from clgen.services.pipeline import CoverLetterPipeline
from clgen.services.store import DocumentStore

LETTER_TEXT = (
    "I am excited to apply for the Software Engineer role at Acme Corp.\n\n"
    "I have built things for years.\n\n"
    "Thank you for your consideration."
)


class FakeLLM:
    """Stands in for GroqLLM; records the prompts it was sent."""

    def __init__(self, reply=LETTER_TEXT, exc=None):
        self.reply = reply
        self.exc = exc
        self.calls = []

    async def chat(self, messages, temperature=0.2):
        self.calls.append(messages)
        if self.exc is not None:
            raise self.exc
        return self.reply


def make_pdf(text: str) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=LETTER)
    c.setFont("Helvetica", 12)
    c.drawString(72, 700, text)
    c.showPage()
    c.save()
    return buf.getvalue()


def make_docx(*paragraphs: str) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


# Compound File Binary sector markers
_FREESECT = 0xFFFFFFFF
_ENDOFCHAIN = 0xFFFFFFFE
_FATSECT = 0xFFFFFFFD
_NOSTREAM = 0xFFFFFFFF


def _dir_entry(name="", kind=0, left=_NOSTREAM, right=_NOSTREAM, child=_NOSTREAM, start=0, size=0):
    raw = name.encode("utf-16-le")
    name_len = len(raw) + 2 if name else 0
    return struct.pack(
        "<64sHBBIII16sIQQIII",
        raw, name_len, kind, 1, left, right, child, b"", 0, 0, 0, start, size, 0,
    )


def make_word97(text: str, flags: int = 0x0200) -> bytes:
    """
    Smallest Word 97 file the piece-table reader accepts: a v3 compound file
    with one FAT sector, one directory sector, a 4096-byte WordDocument
    stream and a 4096-byte 1Table stream holding a single cp1252 piece.
    """
    body = (text + "\r").encode("cp1252")
    text_at = 0x800

    word = bytearray(4096)
    struct.pack_into("<HH", word, 0, 0xA5EC, 0x00C1)
    struct.pack_into("<H", word, 0x0A, flags)
    struct.pack_into("<i", word, 0x4C, len(body))
    struct.pack_into("<II", word, 0x1A2, 0, 21)
    word[text_at:text_at + len(body)] = body

    table = bytearray(4096)
    clx = struct.pack("<BI", 0x02, 16) + struct.pack("<II", 0, len(body))
    clx += struct.pack("<HIH", 0, (text_at * 2) | 0x40000000, 0)
    table[:len(clx)] = clx

    fat = [_FATSECT, _ENDOFCHAIN]
    fat += list(range(3, 10)) + [_ENDOFCHAIN]  # WordDocument: sectors 2-9
    fat += list(range(11, 18)) + [_ENDOFCHAIN]  # 1Table: sectors 10-17
    fat += [_FREESECT] * (128 - len(fat))

    directory = (
        _dir_entry("Root Entry", kind=5, child=1, start=_ENDOFCHAIN)
        + _dir_entry("WordDocument", kind=2, left=2, start=2, size=len(word))
        + _dir_entry("1Table", kind=2, start=10, size=len(table))
        + _dir_entry()
    )

    header = struct.pack(
        "<8s16sHHHHH6sIIIIIIIII",
        bytes.fromhex("D0CF11E0A1B11AE1"), b"", 0x003E, 3, 0xFFFE, 9, 6, b"",
        0, 1, 1, 0, 4096, _ENDOFCHAIN, 0, _ENDOFCHAIN, 0,
    )
    header += struct.pack("<109I", 0, *([_FREESECT] * 108))

    return header + struct.pack("<128I", *fat) + directory + bytes(word) + bytes(table)


def letter_files(uploads_dir: Path):
    if not uploads_dir.exists():
        return []
    return sorted(p.name for p in uploads_dir.glob("cover-letter-*"))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.sqlite'}",
        uploads_dir=tmp_path / "uploads",
        groq_api_key="test-key",
    )


@pytest.fixture
def store(settings):
    s = DocumentStore(settings.database_url)
    s.open()
    yield s
    s.close()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def pipeline(settings, store, fake_llm):
    return CoverLetterPipeline(settings, store, LetterGenerator(fake_llm))
