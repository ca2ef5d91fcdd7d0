"""
vision.py - Image analysis over chat completions with multi-endpoint failover.

Large images make the vision path slow and flaky, so requests go through
VisionFailover: every endpoint is tried a few times, and HTTP failures are
turned into errors that tell the caller what to change.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .engine import REQUEST_ID_HEADER, RequestEngine, RequestOptions, _sleep, backoff_delay
from .errors import (
    APIConnectionError,
    APIConnectionTimeoutError,
    PayloadTooLargeError,
    RateLimitError,
    SVECTORError,
    VisionTimeoutError,
    error_from_status,
)
from .models import ImageAnalysisResponse, VisionOutput, parse_completion

logger = logging.getLogger(__name__)

VISION_CHAT_PATH = "/api/chat/completions"
VISION_MAX_BACKOFF = 10.0

DEFAULT_VISION_MODEL = "spec-3-turbo"
DEFAULT_VISION_MAX_TOKENS = 1000
DEFAULT_VISION_TEMPERATURE = 0.7
DEFAULT_DETAIL = "auto"
DEFAULT_ANALYSIS_PROMPT = "Analyze this image and describe what you see in detail."
DEFAULT_COMPARE_PROMPT = "Compare these images and describe the similarities and differences."
NO_ANALYSIS = "No analysis generated"

REMEDIATION = (
    "Try a smaller image (resize or compress it) or set detail='low' to reduce processing time."
)

_CONFIDENCE_RE = re.compile(r"\[Confidence:\s*(\d+)%\]")


# =============================================================================
# Failover transport
# =============================================================================

class VisionFailover:
    """POSTs chat requests to an ordered list of endpoints until one answers."""

    def __init__(self, engine: RequestEngine):
        self._engine = engine

    @property
    def endpoints(self) -> Tuple[str, ...]:
        config = self._engine.config
        bases = (config.base_url, *config.vision_fallback_urls)
        return tuple(f"{base.rstrip('/')}{VISION_CHAT_PATH}" for base in bases)

    def _classify(self, response: httpx.Response) -> Tuple[SVECTORError, bool]:
        """Return the error for a non-2xx response and whether it may be retried."""
        status = response.status_code
        request_id = response.headers.get(REQUEST_ID_HEADER)
        headers = response.headers

        if status == 413:
            return PayloadTooLargeError(
                "Image payload too large (HTTP 413). Reduce the image resolution or "
                "compress it before sending, or upload it and pass file_id instead.",
                request_id=request_id, headers=headers,
            ), False
        if status == 429:
            return RateLimitError(
                "Vision API rate limit exceeded (HTTP 429). Wait before retrying, or use "
                "batch_analyze() with a longer delay between images.",
                request_id=request_id, headers=headers,
            ), True
        if status == 504:
            return VisionTimeoutError(
                f"Vision API gateway timeout (HTTP 504): the image took too long to process. {REMEDIATION}",
                status=504, request_id=request_id, headers=headers,
            ), True

        text = response.text.strip()[:500]
        error = error_from_status(status, f"HTTP {status}: {text}" if text else f"HTTP {status}",
                                  request_id=request_id, headers=headers)
        return error, status >= 500

    async def request(self, chat_request: Dict[str, Any], options: RequestOptions = None) -> Dict[str, Any]:
        """Send ``chat_request`` and return the parsed JSON body."""
        options = options or RequestOptions()
        config = self._engine.config
        timeout = config.vision_timeout if options.timeout is None else options.timeout
        attempts = config.vision_max_retries if options.max_retries is None else max(1, options.max_retries)

        endpoints = self.endpoints
        headers = self._engine.build_headers(chat_request, options.headers)
        content = json.dumps(chat_request).encode("utf-8")

        for endpoint_index, endpoint in enumerate(endpoints):
            last_endpoint = endpoint_index == len(endpoints) - 1
            for retry in range(attempts):
                final = last_endpoint and retry == attempts - 1
                request = httpx.Request("POST", endpoint, headers=headers, content=content)
                logger.debug("Vision POST %s (endpoint %d/%d, attempt %d/%d)",
                             endpoint, endpoint_index + 1, len(endpoints), retry + 1, attempts)

                try:
                    response = await self._engine.send(request, timeout)
                except APIConnectionError as exc:
                    if final:
                        raise self._transport_failure(exc, timeout, len(endpoints)) from exc
                    delay = backoff_delay(retry, cap=VISION_MAX_BACKOFF)
                    logger.warning("Vision request to %s failed (%s), retrying in %.1fs", endpoint, exc, delay)
                    await _sleep(delay)
                    continue

                if response.is_success:
                    return self._engine.parse_success(response) or {}

                error, retryable = self._classify(response)
                if not retryable or final:
                    raise error

                logger.warning("Vision request to %s returned %s, trying again", endpoint, response.status_code)
                if isinstance(error, RateLimitError):
                    await _sleep(backoff_delay(retry, cap=VISION_MAX_BACKOFF))

        raise APIConnectionError("Vision API request failed after multiple retries")

    @staticmethod
    def _transport_failure(exc: APIConnectionError, timeout: float, endpoint_count: int) -> APIConnectionError:
        if isinstance(exc, APIConnectionTimeoutError):
            return VisionTimeoutError(
                f"Vision API request timed out after {timeout:g}s on {endpoint_count} endpoint(s). {REMEDIATION}"
            )
        return APIConnectionError(f"Vision API request failed: {exc.message}")


# =============================================================================
# Message building
# =============================================================================

def image_content(
    image_url: str = None,
    image_base64: str = None,
    file_id: str = None,
    detail: str = None,
) -> Optional[dict]:
    """Build one image_url content part, or None if no image was given."""
    if image_url:
        url = image_url
    elif image_base64:
        url = image_base64 if image_base64.startswith("data:") else f"data:image/jpeg;base64,{image_base64}"
    elif file_id:
        url = f"file://{file_id}"
    else:
        return None
    return {"type": "image_url", "image_url": {"url": url, "detail": detail or DEFAULT_DETAIL}}


def _vision_request(content: List[dict], model: str, max_tokens: int, temperature: float) -> dict:
    return {
        "model": model or DEFAULT_VISION_MODEL,
        "messages": [{"role": "user", "content": content}],
        "max_tokens": DEFAULT_VISION_MAX_TOKENS if max_tokens is None else max_tokens,
        "temperature": DEFAULT_VISION_TEMPERATURE if temperature is None else temperature,
    }


# =============================================================================
# Resource
# =============================================================================

class Vision:
    """Image analysis resource."""

    def __init__(self, failover: VisionFailover):
        self._failover = failover

    async def _run(self, chat_request: dict, options: RequestOptions = None) -> ImageAnalysisResponse:
        try:
            data = await self._failover.request(chat_request, options)
        except APIConnectionTimeoutError as e:
            if REMEDIATION in e.message:
                raise
            raise VisionTimeoutError(
                f"Vision analysis failed: {e.message}. {REMEDIATION}",
                status=e.status, request_id=e.request_id, headers=e.headers,
            ) from e

        completion = parse_completion(data)
        result = ImageAnalysisResponse(analysis=completion.content or NO_ANALYSIS, usage=completion.usage)
        if completion.get("_request_id"):
            result["_request_id"] = completion["_request_id"]
        return result

    async def analyze(
        self,
        *,
        image_url: str = None,
        image_base64: str = None,
        file_id: str = None,
        prompt: str = None,
        model: str = None,
        max_tokens: int = None,
        temperature: float = None,
        detail: str = None,
        options: RequestOptions = None,
    ) -> ImageAnalysisResponse:
        """Analyze one image given as a URL, base64 data or an uploaded file id."""
        image = image_content(image_url, image_base64, file_id, detail)
        if image is None:
            raise ValueError("Must provide one of: image_url, image_base64, or file_id")

        content = [{"type": "text", "text": prompt or DEFAULT_ANALYSIS_PROMPT}, image]
        return await self._run(_vision_request(content, model, max_tokens, temperature), options)

    async def analyze_from_url(self, image_url: str, prompt: str = None, **kwargs) -> ImageAnalysisResponse:
        return await self.analyze(image_url=image_url, prompt=prompt, **kwargs)

    async def analyze_from_base64(self, base64_data: str, prompt: str = None, **kwargs) -> ImageAnalysisResponse:
        return await self.analyze(image_base64=base64_data, prompt=prompt, **kwargs)

    async def analyze_from_file_id(self, file_id: str, prompt: str = None, **kwargs) -> ImageAnalysisResponse:
        return await self.analyze(file_id=file_id, prompt=prompt, **kwargs)

    async def compare_images(
        self,
        images: List[Dict[str, str]],
        prompt: str = None,
        model: str = None,
        max_tokens: int = None,
        temperature: float = None,
        detail: str = None,
        options: RequestOptions = None,
    ) -> ImageAnalysisResponse:
        """Compare several images. Each item holds one of ``url``, ``base64`` or ``file_id``."""
        content = [{"type": "text", "text": prompt or DEFAULT_COMPARE_PROMPT}]
        for image in images:
            part = image_content(image.get("url"), image.get("base64"), image.get("file_id"), detail)
            if part is not None:
                content.append(part)
        if len(content) == 1:
            raise ValueError("compare_images() needs at least one image")

        return await self._run(_vision_request(content, model, max_tokens, temperature), options)

    async def analyze_with_confidence(self, *, prompt: str = None, **kwargs) -> ImageAnalysisResponse:
        """Analyze an image and parse a ``[Confidence: NN%]`` score out of the answer."""
        prompt = (
            (prompt or "Analyze this image")
            + " Please also provide a confidence score (0-100) for your analysis at the end"
            " in the format: [Confidence: XX%]"
        )
        result = await self.analyze(prompt=prompt, **kwargs)

        match = _CONFIDENCE_RE.search(result.analysis)
        result.confidence = int(match.group(1)) if match else None
        result.analysis = _CONFIDENCE_RE.sub("", result.analysis, count=1).strip()
        return result

    async def create(
        self,
        *,
        model: str = None,
        prompt: str = None,
        image_url: str = None,
        image_base64: str = None,
        file_id: str = None,
        max_tokens: int = None,
        temperature: float = None,
        detail: str = None,
        options: RequestOptions = None,
    ) -> ImageAnalysisResponse:
        """Older single-call form, same result as analyze()."""
        return await self.analyze(
            image_url=image_url, image_base64=image_base64, file_id=file_id, prompt=prompt,
            model=model, max_tokens=max_tokens, temperature=temperature, detail=detail, options=options,
        )

    async def create_response(
        self,
        *,
        model: str,
        input: List[dict],
        max_tokens: int = None,
        temperature: float = None,
        options: RequestOptions = None,
    ) -> VisionOutput:
        """Accepts ``input_text``/``input_image`` message parts and returns ``output_text``."""
        user_message = next((message for message in input if message.get("role") == "user"), None)
        if user_message is None:
            raise ValueError("User message is required")

        texts = []
        image: Dict[str, str] = {}
        for part in user_message.get("content") or []:
            if part.get("type") == "input_text" and part.get("text"):
                texts.append(part["text"])
            elif part.get("type") == "input_image":
                url = part.get("image_url")
                if url:
                    image["image_base64" if url.startswith("data:") else "image_url"] = url
                elif part.get("file_id"):
                    image["file_id"] = part["file_id"]

        result = await self.analyze(
            prompt=" ".join(texts).strip() or None, model=model,
            max_tokens=max_tokens, temperature=temperature, options=options, **image,
        )
        output = VisionOutput(output_text=result.analysis, usage=result.usage)
        if result.get("_request_id"):
            output["_request_id"] = result["_request_id"]
        return output

    async def batch_analyze(
        self,
        images: List[Dict[str, str]],
        model: str = None,
        max_tokens: int = None,
        temperature: float = None,
        detail: str = None,
        delay: float = 1.0,
    ) -> List[ImageAnalysisResponse]:
        """Analyze images one after another, pausing ``delay`` seconds in between.

        A failing image does not stop the batch; its entry has an empty
        analysis and the error message under ``error``.
        """
        results = []
        for index, image in enumerate(images):
            logger.info("Processing image %d/%d", index + 1, len(images))
            try:
                result = await self.analyze(
                    image_url=image.get("image_url"),
                    image_base64=image.get("image_base64"),
                    file_id=image.get("file_id"),
                    prompt=image.get("prompt"),
                    model=model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    detail=detail,
                )
                results.append(ImageAnalysisResponse(analysis=result.analysis, usage=result.usage))
            except (SVECTORError, ValueError) as e:
                logger.warning("Image %d/%d failed: %s", index + 1, len(images), e)
                results.append(ImageAnalysisResponse(analysis="", error=str(e)))

            if index < len(images) - 1:
                await _sleep(delay)
        return results
