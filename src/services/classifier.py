"""Classifier gateway: remote Gemini classification with a mandatory local fallback.

Two variants implement the :class:`ClassifierGateway` protocol:

* :class:`VertexClassifierGateway` -- calls Gemini on Vertex AI (text and
  multimodal) and Google Cloud Vision (image signals).
* :class:`LocalClassifierGateway` -- never reaches the network; every
  call returns "no opinion" so callers use their keyword heuristics.

Failure policy of the remote variant
------------------------------------
* **401 / 403** -- the credential is dead.  The gateway disables itself
  for ``cooldown_seconds`` and returns ``None`` immediately for every call
  in that window without touching the network.
* **429** -- move straight to the next model in the fallback list.
* **5xx / timeout** -- retry the same model ``max_retries`` times after a
  fixed delay, then move to the next model.
* Anything else -- move to the next model.
* A successful call clears the cooldown.

The gateway never raises to its callers; every failure path degrades to
``None`` (text) or an empty :class:`VisualEvidence` (image).
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections.abc import Callable, Sequence
from typing import Any, Final, Protocol, runtime_checkable

import structlog
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.models.enums import Department, EvidenceSource
from src.models.triage import ScoredTerm, VisualEvidence
from src.services.errors import ClassifierUnavailable
from src.services.vision import CloudVisionAnalyzer, decode_photo

logger = structlog.get_logger(__name__)

_IMAGE_PROMPT: Final[str] = """\
You are an image analysis AI for a municipal service management portal.
Analyze this image of a civic issue/complaint and determine:
1. What objects, issues, or problems are visible in the image
2. Which government department should handle this complaint

Available departments: {departments}

Respond in this EXACT JSON format only (no markdown, no code blocks):
{{"labels": ["label1", "label2", "label3", "label4", "label5"], \
"department": "Department Name", "reason": "Brief explanation of why this department"}}\
"""

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(reply: str | None) -> Any | None:
    """Parse a model reply that should be JSON, tolerating code fences.

    Returns ``None`` when nothing parseable is found.
    """
    if not reply:
        return None
    cleaned = _CODE_FENCE.sub("", reply).replace("```", "").strip()
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, ValueError):
        pass
    match = _JSON_OBJECT.search(cleaned)
    if match is None:
        return None
    try:
        return json.loads(match.group(0))
    except (json.JSONDecodeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Protocol + local variant
# ---------------------------------------------------------------------------


@runtime_checkable
class ClassifierGateway(Protocol):
    """Capability interface consumed by the detectors and the integrity filter."""

    @property
    def available(self) -> bool: ...

    async def classify_text(self, prompt: str, max_tokens: int = 200) -> str | None: ...

    async def classify_image(self, photo: str) -> VisualEvidence: ...


class LocalClassifierGateway:
    """Always-local gateway: no remote opinion, ever."""

    __slots__ = ()

    @property
    def available(self) -> bool:
        return False

    async def classify_text(self, prompt: str, max_tokens: int = 200) -> str | None:
        return None

    async def classify_image(self, photo: str) -> VisualEvidence:
        return VisualEvidence(source="none")


# ---------------------------------------------------------------------------
# Remote variant
# ---------------------------------------------------------------------------


class _AuthFailure(Exception):
    pass


class _RateLimited(Exception):
    pass


class _TransientFailure(Exception):
    pass


ModelFactory = Callable[[str], Any]


class VertexClassifierGateway:
    """Gemini-backed gateway with cooldown, model fallback and one retry.

    Parameters
    ----------
    project_id, region:
        Vertex AI project and location; used only by the default model
        factory.
    models:
        Ordered model identifiers to try.
    cooldown_seconds:
        How long to stay disabled after an authentication failure.
    retry_delay_seconds, max_retries:
        Fixed-delay retry policy for transient server errors.
    timeout_seconds:
        Per-attempt timeout.
    vision:
        Optional Cloud Vision analyser tried before the multimodal model.
    model_factory:
        ``model_name -> model`` where ``model.generate_content_async`` is
        awaited.  Injected by tests; defaults to Vertex ``GenerativeModel``.
    clock:
        Monotonic clock used for the cooldown window.
    """

    __slots__ = (
        "_clock",
        "_cooldown",
        "_disabled_until",
        "_initialized",
        "_max_retries",
        "_model_cache",
        "_model_factory",
        "_models",
        "_project_id",
        "_region",
        "_retry_delay",
        "_timeout",
        "_vision",
    )

    def __init__(
        self,
        project_id: str = "",
        region: str = "asia-south1",
        models: Sequence[str] = ("gemini-2.0-flash", "gemini-1.5-flash"),
        *,
        cooldown_seconds: float = 300.0,
        retry_delay_seconds: float = 2.0,
        max_retries: int = 1,
        timeout_seconds: float = 20.0,
        vision: CloudVisionAnalyzer | None = None,
        model_factory: ModelFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not models:
            raise ValueError("at least one classifier model is required")
        self._project_id = project_id
        self._region = region
        self._models = tuple(models)
        self._cooldown = cooldown_seconds
        self._retry_delay = retry_delay_seconds
        self._max_retries = max_retries
        self._timeout = timeout_seconds
        self._vision = vision
        self._model_factory = model_factory
        self._model_cache: dict[str, Any] = {}
        self._clock = clock
        self._disabled_until = 0.0
        self._initialized = False

    # -- state -------------------------------------------------------------

    @property
    def available(self) -> bool:
        return self._clock() >= self._disabled_until

    # -- model handles -----------------------------------------------------

    def _get_model(self, model_name: str) -> Any:
        model = self._model_cache.get(model_name)
        if model is not None:
            return model
        if self._model_factory is not None:
            model = self._model_factory(model_name)
        else:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            if not self._initialized:
                vertexai.init(project=self._project_id, location=self._region)
                self._initialized = True
                logger.info("classifier.initialized", project=self._project_id, region=self._region)
            model = GenerativeModel(model_name=model_name)
        self._model_cache[model_name] = model
        return model

    async def _generate(
        self,
        model_name: str,
        contents: Any,
        max_tokens: int,
        temperature: float,
    ) -> str:
        model = self._get_model(model_name)
        config = {"temperature": temperature, "max_output_tokens": max_tokens}
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(contents, generation_config=config),
                timeout=self._timeout,
            )
        except (google_exceptions.Unauthorized, google_exceptions.Forbidden) as exc:
            raise _AuthFailure(str(exc)) from exc
        except google_exceptions.TooManyRequests as exc:
            raise _RateLimited(str(exc)) from exc
        except (google_exceptions.ServerError, TimeoutError) as exc:
            raise _TransientFailure(str(exc) or type(exc).__name__) from exc
        except Exception as exc:
            raise ClassifierUnavailable(str(exc)) from exc

        try:
            text = response.text or ""
        except (AttributeError, ValueError):
            # Blocked or empty candidates raise on ``.text``.
            text = ""
        return text.strip()

    async def _generate_with_retry(
        self,
        model_name: str,
        contents: Any,
        max_tokens: int,
        temperature: float,
    ) -> str:
        text = ""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(_TransientFailure),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_fixed(self._retry_delay),
            reraise=True,
        ):
            with attempt:
                text = await self._generate(model_name, contents, max_tokens, temperature)
        return text

    async def _complete(
        self,
        contents: Any,
        max_tokens: int,
        temperature: float = 0.3,
    ) -> str | None:
        if not self.available:
            logger.info("classifier.skip_cooldown", disabled_for_s=round(self._disabled_until - self._clock(), 1))
            return None

        for model_name in self._models:
            start = time.perf_counter()
            try:
                text = await self._generate_with_retry(model_name, contents, max_tokens, temperature)
            except _AuthFailure as exc:
                self._disabled_until = self._clock() + self._cooldown
                logger.warning(
                    "classifier.auth_failed",
                    model=model_name,
                    cooldown_s=self._cooldown,
                    error=str(exc)[:120],
                )
                return None
            except _RateLimited:
                logger.warning("classifier.rate_limited", model=model_name)
                continue
            except (_TransientFailure, ClassifierUnavailable) as exc:
                logger.warning("classifier.model_failed", model=model_name, error=str(exc)[:120])
                continue

            self._disabled_until = 0.0
            logger.info(
                "classifier.ok",
                model=model_name,
                response_length=len(text),
                processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return text or None

        logger.warning("classifier.exhausted", models=list(self._models))
        return None

    # -- public API --------------------------------------------------------

    async def classify_text(self, prompt: str, max_tokens: int = 200) -> str | None:
        return await self._complete(prompt, max_tokens)

    async def classify_image(self, photo: str) -> VisualEvidence:
        try:
            image, mime = decode_photo(photo)
        except ValueError:
            logger.warning("classifier.photo_undecodable")
            return VisualEvidence(source="none")

        if self._vision is not None:
            try:
                evidence = await asyncio.wait_for(self._vision.analyze(image), timeout=self._timeout)
            except Exception as exc:
                logger.warning("classifier.vision_failed", error=str(exc)[:120])
            else:
                if not evidence.is_empty:
                    return evidence

        return await self._classify_image_multimodal(image, mime)

    async def _classify_image_multimodal(self, image: bytes, mime: str) -> VisualEvidence:
        try:
            from vertexai.generative_models import Part

            image_part = Part.from_data(data=image, mime_type=mime)
        except Exception as exc:
            logger.warning("classifier.image_part_failed", error=str(exc)[:120])
            return VisualEvidence(source="none")

        prompt = _IMAGE_PROMPT.format(departments=", ".join(d.value for d in Department))
        reply = await self._complete(
            [image_part, prompt],
            max_tokens=200,
            temperature=0.2,
        )
        parsed = extract_json(reply)
        if not isinstance(parsed, dict):
            if reply:
                logger.warning("classifier.image_reply_unparsable", reply=reply[:200])
            return VisualEvidence(source="none")

        labels = [
            ScoredTerm(str(label).lower(), 0.8, EvidenceSource.LABEL)
            for label in parsed.get("labels") or []
            if label
        ]
        department = parsed.get("department")
        reason = parsed.get("reason")
        return VisualEvidence(
            labels=labels,
            direct_department=str(department) if department else None,
            direct_reason=str(reason) if reason else None,
            source="gemini-vision",
        )
