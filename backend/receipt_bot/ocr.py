"""Text extraction from receipt photos and PDF documents."""

from __future__ import annotations

import logging
import re
from io import BytesIO

import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .errors import ExtractionError

logger = logging.getLogger(__name__)


def looks_like_pdf(content: bytes) -> bool:
    return content.lstrip()[:5] == b"%PDF-"


def _clean(text: str) -> str:
    normalised = text.replace("\r", "\n").replace("\u202f", " ").replace("\xa0", " ")
    normalised = re.sub(r"[ \t]+", " ", normalised)
    return "\n".join(line.strip() for line in normalised.split("\n") if line.strip())


def text_from_pdf(content: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as exc:
        logger.warning("Failed to read PDF receipt: %s", exc)
        return ""
    return _clean("\n".join(pages))


def text_from_image(content: bytes, languages: str = "eng") -> str:
    try:
        image = Image.open(BytesIO(content))
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Failed to open image for OCR: %s", exc)
        return ""

    if max(image.width, image.height) < 1600:
        scale = 1600 / max(image.width, image.height)
        image = image.resize(
            (int(image.width * scale), int(image.height * scale)),
            Image.Resampling.LANCZOS,
        )
    image = ImageOps.autocontrast(image.convert("L"))
    image = image.point(lambda x: 0 if x < 140 else 255, "1")

    try:
        text = pytesseract.image_to_string(image, lang=languages, config="--psm 6 --oem 3")
    except pytesseract.TesseractNotFoundError as exc:
        raise ExtractionError("Tesseract OCR is not installed on this server.") from exc
    return _clean(text)


def extract_text(content: bytes, languages: str = "eng") -> str:
    text = text_from_pdf(content) if looks_like_pdf(content) else text_from_image(content, languages)
    preview = text if len(text) <= 500 else f"{text[:500]}…"
    logger.info("OCR extracted text: %s", preview)
    return text
