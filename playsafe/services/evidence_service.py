"""
Photo evidence handling.

Photos arrive as base64 strings or ``data:`` URLs and are stored inline on
the issue document, so each one has to fit well inside Firestore's ~1MB
document ceiling. Every photo is re-encoded as a bounded JPEG; a second,
smaller pass runs when the first result is still over budget.
"""

from typing import List
import base64
import binascii
import io
import logging

from PIL import Image, UnidentifiedImageError

from ..core.config import settings

logger = logging.getLogger(__name__)

REPORT_QUALITY = 60
COMPLETION_QUALITY = 60
FALLBACK_MAX_EDGE = 600
FALLBACK_QUALITY = 40

DATA_URL_PREFIX = "data:image/jpeg;base64,"


class EvidenceError(ValueError):
    pass


def _decode(photo: str) -> bytes:
    payload = photo.split(",", 1)[1] if photo.startswith("data:") else photo
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise EvidenceError("Photo is not valid base64 data")


def _to_data_url(raw: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


def _reencode(raw: bytes, max_edge: int, quality: int) -> str:
    with Image.open(io.BytesIO(raw)) as img:
        img = img.convert("RGB")
        img.thumbnail((max_edge, max_edge))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True)
    return _to_data_url(out.getvalue())


def compress_photo(photo: str, max_edge: int = None, quality: int = REPORT_QUALITY) -> str:
    budget = settings.PHOTO_BYTE_BUDGET
    raw = _decode(photo)
    try:
        encoded = _reencode(raw, max_edge or settings.PHOTO_MAX_EDGE, quality)
        if len(encoded) > budget:
            logger.warning(f"[Evidence] Photo still {len(encoded)} bytes after compression, compressing further")
            encoded = _reencode(raw, FALLBACK_MAX_EDGE, FALLBACK_QUALITY)
    except Image.DecompressionBombError as e:
        logger.error(f"[Evidence] Rejected oversized image: {e}")
        raise EvidenceError("Image resolution is too large")
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"[Evidence] Could not process photo: {e}")
        # Keep the original only if it is an image we can identify and it fits
        try:
            with Image.open(io.BytesIO(raw)) as img:
                mime = Image.MIME.get(img.format, "image/jpeg")
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
            raise EvidenceError("File is not a supported image")
        encoded = _to_data_url(raw, mime)

    if len(encoded) > budget:
        raise EvidenceError(f"Photo is too large ({len(encoded)} bytes after compression)")
    return encoded


def _process(photos: List[str], limit: int, quality: int, label: str) -> List[str]:
    photos = [p for p in (photos or []) if p]
    if len(photos) > limit:
        raise EvidenceError(f"You can attach at most {limit} photos {label}")
    processed = []
    for index, photo in enumerate(photos, start=1):
        try:
            processed.append(compress_photo(photo, quality=quality))
        except EvidenceError as e:
            raise EvidenceError(f"Photo {index}: {e}")
    return processed


def process_report_photos(photos: List[str]) -> List[str]:
    return _process(photos, settings.MAX_REPORT_PHOTOS, REPORT_QUALITY, "to a report")


def process_completion_proof(photos: List[str]) -> List[str]:
    return _process(photos, settings.MAX_COMPLETION_PHOTOS, COMPLETION_QUALITY, "as completion proof")
