from __future__ import annotations

import io
import logging

import pytesseract
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from .constants import MEDIA_KIND_IMAGE, MEDIA_KIND_PDF, MEDIA_KIND_UNSUPPORTED

logger = logging.getLogger(__name__)


class UnsupportedMediaKind(ValueError):
    pass


class ExtractionFailed(RuntimeError):
    pass


def media_kind_for(mime_type: str | None) -> str:
    normalized = (mime_type or "").lower().strip()
    if normalized == "application/pdf":
        return MEDIA_KIND_PDF
    if normalized.startswith("image/"):
        return MEDIA_KIND_IMAGE
    return MEDIA_KIND_UNSUPPORTED


class IngestionNormalizer:
    """Turns an uploaded photo or PDF into plain text.

    Blocking (Tesseract, poppler); callers in async code run it in a thread.
    """

    def __init__(self, ocr_language: str = "rus+eng", max_ocr_pages: int = 5) -> None:
        self.ocr_language = ocr_language
        self.max_ocr_pages = max_ocr_pages

    def extract(self, payload: bytes, media_kind: str) -> str:
        if media_kind == MEDIA_KIND_IMAGE:
            text = self._extract_image(payload)
        elif media_kind == MEDIA_KIND_PDF:
            text = self._extract_pdf(payload)
        else:
            raise UnsupportedMediaKind(f"Unsupported media kind: {media_kind}")

        text = text.strip()
        if not text:
            raise ExtractionFailed(f"No text found in {media_kind}")
        return text

    def _ocr(self, image: Image.Image) -> str:
        # Small normalization: convert to RGB to avoid mode issues
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        try:
            return pytesseract.image_to_string(image, lang=self.ocr_language) or ""
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise ExtractionFailed(f"OCR failed: {exc}") from exc

    def _extract_image(self, payload: bytes) -> str:
        try:
            image = Image.open(io.BytesIO(payload))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ExtractionFailed(f"Cannot decode image: {exc}") from exc
        return self._ocr(image)

    def _extract_pdf(self, payload: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(payload))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, OSError) as exc:
            raise ExtractionFailed(f"Cannot read PDF: {exc}") from exc

        text = "\n".join(pages).strip()
        if text:
            return text

        # Scanned PDF without a text layer: render the first pages and OCR them.
        logger.info("PDF has no text layer, falling back to OCR")
        try:
            images = convert_from_bytes(payload, last_page=self.max_ocr_pages)
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as exc:
            raise ExtractionFailed(f"Cannot render PDF pages: {exc}") from exc

        parts: list[str] = []
        for i, image in enumerate(images, start=1):
            ocr = self._ocr(image).strip()
            if ocr:
                parts.append(f"[Страница {i}]\n{ocr}")
        return "\n\n".join(parts)
