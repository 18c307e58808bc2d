"""Google Cloud Vision analyser for complaint photos.

Runs label, object, text and web detection in a single
``batch_annotate_images`` call and normalises the response into a
:class:`~src.models.triage.VisualEvidence`.  Errors propagate to the
caller (the classifier gateway), which decides how to fall back.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Final

import structlog
from google.cloud import vision

from src.models.enums import EvidenceSource
from src.models.triage import ScoredTerm, VisualEvidence

logger = structlog.get_logger(__name__)

_FEATURES: Final[tuple[tuple[Any, int], ...]] = (
    (vision.Feature.Type.LABEL_DETECTION, 20),
    (vision.Feature.Type.OBJECT_LOCALIZATION, 15),
    (vision.Feature.Type.TEXT_DETECTION, 5),
    (vision.Feature.Type.WEB_DETECTION, 10),
)

_DEFAULT_MIME: Final[str] = "image/jpeg"


def decode_photo(photo: str) -> tuple[bytes, str]:
    """Split a base64 photo (optionally a ``data:`` URI) into bytes and MIME type.

    Raises :class:`ValueError` when the payload is not valid base64.
    """
    mime = _DEFAULT_MIME
    payload = photo.strip()
    if payload.startswith("data:") and "," in payload:
        header, payload = payload.split(",", 1)
        mime = header[5:].split(";", 1)[0] or _DEFAULT_MIME
    elif "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=False), mime
    except (binascii.Error, ValueError) as exc:
        raise ValueError("photo is not valid base64") from exc


class CloudVisionAnalyzer:
    """Thin async wrapper over ``ImageAnnotatorAsyncClient``.

    The client is created lazily so constructing the analyser never
    touches credentials.
    """

    __slots__ = ("_client",)

    def __init__(self, client: Any | None = None) -> None:
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = vision.ImageAnnotatorAsyncClient()
            logger.info("vision.client_initialised")
        return self._client

    async def analyze(self, image: bytes) -> VisualEvidence:
        request = vision.AnnotateImageRequest(
            image=vision.Image(content=image),
            features=[vision.Feature(type_=kind, max_results=limit) for kind, limit in _FEATURES],
        )
        batch = await self._get_client().batch_annotate_images(requests=[request])
        result = batch.responses[0]
        if result.error and result.error.message:
            raise RuntimeError(f"Cloud Vision error: {result.error.message}")

        labels = [
            ScoredTerm(a.description.lower(), float(a.score), EvidenceSource.LABEL)
            for a in result.label_annotations
            if a.description
        ]
        objects = [
            ScoredTerm(o.name.lower(), float(o.score), EvidenceSource.OBJECT)
            for o in result.localized_object_annotations
            if o.name
        ]
        text = result.text_annotations[0].description.lower() if result.text_annotations else ""
        web_entities = [
            ScoredTerm(e.description.lower(), float(e.score or 0.0), EvidenceSource.WEB)
            for e in result.web_detection.web_entities
            if e.description
        ]

        logger.info(
            "vision.analyzed",
            labels=[t.term for t in labels],
            objects=[t.term for t in objects],
            text_length=len(text),
            web_entities=[t.term for t in web_entities],
        )
        return VisualEvidence(
            labels=labels,
            objects=objects,
            text=text,
            web_entities=web_entities,
            source="google-vision",
        )
