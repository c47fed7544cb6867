"""OCR service using Tesseract.

Production-grade OCR implementation with:
- Configurable Tesseract path via environment variables
- Line-level blocks with per-line confidence from ``image_to_data``
- Multi-page TIFF and PDF support (PDF pages rasterised with pdf2image)
- Typed errors separating bad documents from an unavailable engine

Based on pytesseract documentation:
https://github.com/madmaze/pytesseract
"""

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytesseract
from pdf2image import convert_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image, ImageSequence, UnidentifiedImageError

from invoice_scanner.ocr.base import OCRBlock, OCRResult, normalize_confidence
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import CapabilityUnavailable, OCRError

logger = logging.getLogger(__name__)


class TesseractOCRService:
    """OCR service using Tesseract engine.

    Handles text extraction from images and PDFs with proper error handling
    and configuration management.
    """

    provider_name = "tesseract"

    def __init__(self, settings: Settings) -> None:
        """Initialize OCR service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._configure_tesseract()

    def _configure_tesseract(self) -> None:
        """Configure Tesseract command path from environment.

        Allows overriding default Tesseract path via TESSERACT_CMD environment variable.
        Common paths:
        - Linux: /usr/bin/tesseract
        - macOS: /opt/homebrew/bin/tesseract or /usr/local/bin/tesseract
        - Windows: C:\\Program Files\\Tesseract-OCR\\tesseract.exe
        """
        tesseract_cmd = os.getenv("TESSERACT_CMD")
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def is_available(self) -> bool:
        """Check if the tesseract binary can be executed."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except Exception:
            return False

    def _iter_pages(self, document_path: Path, mime_type: str) -> Iterator[Image.Image]:
        if mime_type == "application/pdf":
            yield from convert_from_path(str(document_path), dpi=self.settings.pdf_render_dpi)
            return

        with Image.open(document_path) as image:
            for frame in ImageSequence.Iterator(image):
                yield frame.convert("RGB")

    def analyze_document(self, document_path: Path, mime_type: str) -> OCRResult:
        """Extract line blocks from an image or PDF.

        Args:
            document_path: Local path of the downloaded document
            mime_type: Declared MIME type of the document

        Returns:
            OCRResult with one PAGE block per page followed by its LINE blocks

        Raises:
            OCRError: If the document cannot be decoded or recognised
            CapabilityUnavailable: If tesseract or poppler are not installed
        """
        if not document_path.exists():
            raise OCRError(f"Document file not found: {document_path}")

        try:
            blocks: list[OCRBlock] = []
            for page_number, page in enumerate(self._iter_pages(document_path, mime_type), 1):
                data = pytesseract.image_to_data(page, output_type=pytesseract.Output.DICT)
                blocks.append(OCRBlock(block_type="PAGE", page=page_number))
                blocks.extend(self._lines_from_data(data, page_number))

            logger.info(f"Tesseract produced {len(blocks)} blocks for {document_path.name}")
            return OCRResult(blocks=blocks, provider=self.provider_name)

        except pytesseract.TesseractNotFoundError as e:
            raise CapabilityUnavailable(f"Tesseract is not installed: {e}") from e
        except PDFInfoNotInstalledError as e:
            raise CapabilityUnavailable(f"Poppler is not installed: {e}") from e
        except (UnidentifiedImageError, PDFPageCountError, PDFSyntaxError) as e:
            raise OCRError(f"Unreadable document: {e}") from e
        except pytesseract.TesseractError as e:
            raise OCRError(f"OCR processing failed: {e}") from e
        except OSError as e:
            raise OCRError(f"OCR processing failed: {e}", transient=True) from e

    @staticmethod
    def _lines_from_data(data: dict[str, list[Any]], page_number: int) -> list[OCRBlock]:
        """Group word boxes from ``image_to_data`` into LINE blocks."""
        lines: dict[tuple[int, int, int], tuple[list[str], list[float]]] = {}

        for i, word in enumerate(data.get("text", [])):
            text = str(word).strip()
            if not text:
                continue
            key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
            words, scores = lines.setdefault(key, ([], []))
            words.append(text)
            score = normalize_confidence(float(data["conf"][i]))
            if score is not None:
                scores.append(score)

        return [
            OCRBlock(
                block_type="LINE",
                text=" ".join(words),
                confidence=sum(scores) / len(scores) if scores else None,
                page=page_number,
            )
            for words, scores in lines.values()
        ]
