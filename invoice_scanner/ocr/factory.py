"""Factory for creating OCR services based on configuration.

Implements Factory Pattern for OCR provider selection.
Allows switching between Tesseract and PaddleOCR at runtime.
"""

import logging

from invoice_scanner.ocr.base import OCRService
from invoice_scanner.shared.config import Settings

logger = logging.getLogger(__name__)


def create_ocr_service(settings: Settings) -> OCRService:
    """Factory function to create OCR service based on configuration.

    Args:
        settings: Application settings with ocr_provider field

    Returns:
        Configured OCR service instance

    Raises:
        ValueError: If configured provider is unknown
    """
    provider = settings.ocr_provider

    if provider == "tesseract":
        from invoice_scanner.ocr.service import TesseractOCRService

        logger.info("Created OCR service: tesseract")
        return TesseractOCRService(settings)

    elif provider == "paddleocr":
        from invoice_scanner.ocr.paddle_service import PaddleOCRService

        service = PaddleOCRService(settings)
        if not service.is_available():
            logger.warning(
                "PaddleOCR not available. Install with: pip install paddlepaddle paddleocr"
            )
        logger.info("Created OCR service: paddleocr")
        return service

    else:
        available = ["tesseract", "paddleocr"]
        raise ValueError(f"Unknown OCR provider: '{provider}'. Available: {', '.join(available)}")
