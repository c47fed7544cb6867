"""OCR capability contract and reduction of OCR output.

Providers return typed layout blocks with per-block confidence; the
pipeline reduces them to a plain-text corpus and one confidence score.
"""

import re
from pathlib import Path
from statistics import fmean
from typing import Literal, Protocol

from pydantic import BaseModel, Field

_WHITESPACE = re.compile(r"\s+")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


class OCRBlock(BaseModel):
    """One text or layout block.

    Attributes:
        block_type: PAGE, LINE or WORD
        text: Recognised text, if the block carries any
        confidence: Recognition confidence in [0, 1], if reported
        page: 1-based page number
    """

    block_type: Literal["PAGE", "LINE", "WORD"]
    text: str | None = None
    confidence: float | None = Field(None, ge=0, le=1)
    page: int = 1


class OCRResult(BaseModel):
    """Blocks in document order plus the provider that produced them."""

    blocks: list[OCRBlock]
    provider: str


class OCRService(Protocol):
    """Protocol for OCR services."""

    def analyze_document(self, document_path: Path, mime_type: str) -> OCRResult:
        """Extract blocks from a document.

        Raises:
            OCRError: On recognition failure
            CapabilityUnavailable: When the engine cannot be reached or loaded
        """
        ...

    def is_available(self) -> bool:
        """Check if OCR service is available."""
        ...


def normalize_confidence(value: float | None) -> float | None:
    """Map engine confidence onto [0, 1].

    Engines reporting percentages (0-100) are scaled down; negative values
    mean "no confidence" (Tesseract reports -1 for non-text boxes).
    """
    if value is None or value < 0:
        return None
    if value > 1:
        value = value / 100
    return min(value, 1.0)


def sanitize_text(text: str) -> str:
    """Collapse whitespace and drop control characters."""
    return _WHITESPACE.sub(" ", _CONTROL_CHARS.sub("", text)).strip()


def build_corpus(blocks: list[OCRBlock]) -> str:
    """Concatenate LINE text in document order, one line per row."""
    lines = (sanitize_text(b.text) for b in blocks if b.block_type == "LINE" and b.text)
    return "\n".join(line for line in lines if line)


def mean_confidence(blocks: list[OCRBlock]) -> float:
    """Arithmetic mean of block confidences, 0.0 if none reported.

    Rounded to 4 decimal places.
    """
    scores = [b.confidence for b in blocks if b.confidence is not None]
    if not scores:
        return 0.0
    return round(fmean(scores), 4)
