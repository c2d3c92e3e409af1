# backend/clgen/services/extraction.py
from __future__ import annotations

import io
import logging
import os
import re
import struct
from enum import Enum
from typing import Callable, Dict, Optional
from zipfile import BadZipFile

import olefile
from docx import Document  # python-docx
from docx.opc.exceptions import PackageNotFoundError
from PyPDF2 import PdfReader
from unidecode import unidecode

from clgen.errors import ExtractionDegraded

log = logging.getLogger(__name__)


class DocumentFormat(str, Enum):
    PDF = "application/pdf"
    DOC = "application/msword"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_declared(cls, content_type: Optional[str], filename: Optional[str] = None) -> "DocumentFormat":
        """
        Decode the declared MIME type. The filename extension is only consulted
        when the client sent no type or the generic octet-stream.
        """
        mime = (content_type or "").split(";")[0].strip().lower()
        if mime and mime != "application/octet-stream":
            for fmt in cls:
                if fmt is not cls.UNSUPPORTED and fmt.value == mime:
                    return fmt
            return cls.UNSUPPORTED
        return _BY_EXTENSION.get(os.path.splitext(filename or "")[1].lower(), cls.UNSUPPORTED)

    @property
    def supported(self) -> bool:
        return self is not DocumentFormat.UNSUPPORTED


_BY_EXTENSION = {
    ".pdf": DocumentFormat.PDF,
    ".doc": DocumentFormat.DOC,
    ".docx": DocumentFormat.DOCX,
}


def clean_text(text: str) -> str:
    # Normalize unicode → ASCII-ish for ATS friendliness
    text = unidecode(text)
    # Collapse control chars & binary noise
    text = re.sub(r"[^\x09\x0A\x0D\x20-\x7E]", " ", text)  # keep tabs/newlines/printables
    # Collapse excessive whitespace
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _read_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for p in reader.pages:
        pages.append(p.extract_text() or "")
    return "\n\n".join(pages)


def _read_docx(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    return "\n".join(p.text for p in doc.paragraphs)


# Word 97-2003 binary layout (MS-DOC): offsets into the WordDocument stream FIB.
_FIB_FLAGS = 0x000A
_FIB_CCP_TEXT = 0x004C
_FIB_FC_CLX = 0x01A2
_F_ENCRYPTED = 0x0100
_F_WHICH_TBL_STM = 0x0200
_FC_COMPRESSED = 0x40000000


def _read_word97(data: bytes) -> str:
    """Walk the piece table of a legacy .doc and return the main document text."""
    with olefile.OleFileIO(io.BytesIO(data)) as ole:
        if not ole.exists("WordDocument"):
            raise ExtractionDegraded("no WordDocument stream")
        word = ole.openstream("WordDocument").read()
        flags = struct.unpack_from("<H", word, _FIB_FLAGS)[0]
        if flags & _F_ENCRYPTED:
            raise ExtractionDegraded("document is encrypted")
        table_name = "1Table" if flags & _F_WHICH_TBL_STM else "0Table"
        if not ole.exists(table_name):
            raise ExtractionDegraded(f"missing {table_name} stream")
        table = ole.openstream(table_name).read()

    ccp_text = struct.unpack_from("<i", word, _FIB_CCP_TEXT)[0]
    fc_clx, lcb_clx = struct.unpack_from("<II", word, _FIB_FC_CLX)
    clx = table[fc_clx:fc_clx + lcb_clx]

    pos = 0
    while pos < len(clx) and clx[pos] == 0x01:  # skip Prc entries
        cb_grpprl = struct.unpack_from("<h", clx, pos + 1)[0]
        pos += 3 + cb_grpprl
    if pos >= len(clx) or clx[pos] != 0x02:
        raise ExtractionDegraded("piece table not found")

    lcb = struct.unpack_from("<I", clx, pos + 1)[0]
    plc = clx[pos + 5:pos + 5 + lcb]
    n = (lcb - 4) // 12
    cps = struct.unpack_from(f"<{n + 1}I", plc, 0)

    parts = []
    for i in range(n):
        fc = struct.unpack_from("<I", plc, (n + 1) * 4 + i * 8 + 2)[0]
        count = cps[i + 1] - cps[i]
        if fc & _FC_COMPRESSED:
            start = (fc & ~_FC_COMPRESSED) // 2
            parts.append(word[start:start + count].decode("cp1252", errors="ignore"))
        else:
            parts.append(word[fc:fc + 2 * count].decode("utf-16-le", errors="ignore"))

    text = "".join(parts)[:max(ccp_text, 0)]
    # paragraph marks, vertical tabs and page breaks become newlines
    return re.sub(r"[\r\x0b\x0c]", "\n", text)


def _read_doc(data: bytes) -> str:
    # plenty of ".doc" uploads are really OOXML files with the old extension
    try:
        return _read_docx(data)
    except (PackageNotFoundError, BadZipFile):
        return _read_word97(data)


_READERS: Dict[DocumentFormat, Callable[[bytes], str]] = {
    DocumentFormat.PDF: _read_pdf,
    DocumentFormat.DOC: _read_doc,
    DocumentFormat.DOCX: _read_docx,
}


def extract(data: bytes, fmt: DocumentFormat) -> str:
    """
    Best-effort text extraction. Never raises: unsupported formats and
    extractor failures both yield "".
    """
    reader = _READERS.get(fmt)
    if reader is None:
        log.info("No extractor for format %s; storing empty content", fmt)
        return ""
    try:
        raw = reader(data)
    except Exception as e:
        log.warning("ExtractionDegraded: %s extraction failed: %s", fmt.name, e)
        return ""
    return clean_text(raw or "")
