import json
import logging

import groq
from groq import AsyncGroq

from neurostudy.config import settings
from neurostudy.errors import GenerationError, MissingCredentialsError

logger = logging.getLogger(__name__)

# Reference list of chat models currently available on Groq's platform.
# See https://console.groq.com/docs/models for the authoritative list.
AVAILABLE_MODELS = [
    "llama-3.3-70b-versatile",
    "llama-3.1-8b-instant",
    "meta-llama/llama-4-scout-17b-16e-instruct",
    "meta-llama/llama-4-maverick-17b-128e-instruct",
    "moonshotai/kimi-k2-instruct",
]


class GroqClient:
    """Async wrapper around the official Groq SDK with easy model switching.

    Usage::

        groq = GroqClient()                          # uses DEFAULT_MODEL from env
        text = await groq.chat(messages)             # plain completion

        vision = groq.with_model(settings.vision_model)
        text = await vision.chat(messages_with_image)

        data = await groq.chat_json(messages, MY_SCHEMA)  # structured output
        segments = await groq.transcribe("lecture.mp3", audio_bytes)

    Construction fails with :class:`MissingCredentialsError` when no API key
    is configured.  Every SDK failure is re-raised as :class:`GenerationError`.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        key = api_key or settings.groq_api_key
        if not key:
            raise MissingCredentialsError(
                "GROQ_API_KEY is not configured; generation is unavailable."
            )
        self._model = model or settings.default_model
        self._client = AsyncGroq(api_key=key)

    # ------------------------------------------------------------------
    # Model switching
    # ------------------------------------------------------------------
    @property
    def default_model(self) -> str:
        return self._model

    def with_model(self, model_name: str) -> "GroqClient":
        """Return a new GroqClient bound to *model_name*.

        The underlying ``AsyncGroq`` client (and its httpx session) is shared.
        """
        clone = GroqClient.__new__(GroqClient)
        clone._model = model_name
        clone._client = self._client
        return clone

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Plain-text chat completion. Returns the content string."""
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._create(kwargs)
        content = resp.choices[0].message.content
        if not content:
            raise GenerationError("The generation service returned an empty response.")
        return content

    async def chat_json(
        self,
        messages: list[dict],
        response_schema: dict,
        *,
        schema_name: str = "response",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Structured-output completion using Groq's strict JSON Schema mode.

        *response_schema* must be a valid JSON Schema dict.  Groq strict mode
        requires ``"additionalProperties": false`` on every object and all
        properties listed in ``"required"``.

        Returns the parsed JSON as a Python dict.
        """
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": response_schema,
                },
            },
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._create(kwargs)
        try:
            return json.loads(resp.choices[0].message.content or "")
        except json.JSONDecodeError as e:
            raise GenerationError(
                f"The generation service returned malformed JSON for {schema_name}."
            ) from e

    # ------------------------------------------------------------------
    # Speech to text
    # ------------------------------------------------------------------
    async def transcribe(
        self, filename: str, data: bytes, *, model: str | None = None
    ) -> list[dict]:
        """Transcribe audio/video bytes with Groq's hosted Whisper.

        Returns ``[{"start": float, "end": float, "text": str}, ...]``.  When
        the service reports no segments, the full text comes back as a
        single segment starting at 0.
        """
        try:
            resp = await self._client.audio.transcriptions.create(
                file=(filename, data),
                model=model or settings.transcription_model,
                response_format="verbose_json",
            )
        except groq.APIError as e:
            logger.error("Groq transcription failed: %s", e)
            raise GenerationError(f"Transcription failed: {e}") from e

        segments = getattr(resp, "segments", None) or []
        result = []
        for seg in segments:
            if not isinstance(seg, dict):
                seg = vars(seg)
            result.append({
                "start": float(seg["start"]),
                "end": float(seg["end"]),
                "text": seg["text"].strip(),
            })
        if not result and resp.text:
            result.append({"start": 0.0, "end": 0.0, "text": resp.text.strip()})
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    async def _create(self, kwargs: dict):
        try:
            return await self._client.chat.completions.create(**kwargs)
        except groq.APIError as e:
            logger.error("Groq completion failed (model=%s): %s", kwargs["model"], e)
            raise GenerationError(f"Generation service error: {e}") from e
