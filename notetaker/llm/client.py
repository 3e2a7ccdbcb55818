import asyncio
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import time
from threading import Lock
from typing import Any
from uuid import uuid4

from openai import (
    APIConnectionError,
    APIError,
    APIResponseValidationError,
    APIStatusError,
    AsyncOpenAI,
)

from notetaker.config import Settings
from notetaker.errors import SynthesisMalformed, SynthesisUnavailable

logger = logging.getLogger(__name__)
_log_write_lock = Lock()


def _call_log_path(log_path_value: str) -> Path:
    log_path = Path(log_path_value)
    if log_path.is_absolute():
        return log_path
    project_root = Path(__file__).resolve().parents[2]
    return project_root / log_path


def _append_call_log(settings: Settings, record: dict) -> None:
    if not settings.synthesis_log_enabled:
        return

    path = _call_log_path(settings.synthesis_log_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record, ensure_ascii=False)
        with _log_write_lock:
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
    except Exception:
        logger.exception("Failed to write synthesis request log.")


class SynthesisClient:
    """Long-lived handle to the OpenAI-compatible generative-text service.

    Created once per process (see ``notetaker.main.lifespan``) and shared by
    every request. The underlying SDK client never retries; each call is
    bounded by ``synthesis_timeout_seconds`` of wall-clock time.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            base_url=settings.synthesis_base_url,
            api_key=settings.synthesis_api_key,
            timeout=settings.synthesis_timeout_seconds,
            max_retries=0,
        )
        self._semaphore = asyncio.Semaphore(max(1, settings.synthesis_max_concurrent_calls))

    @property
    def model(self) -> str:
        return self._settings.synthesis_model

    async def aclose(self) -> None:
        await self._client.close()

    async def chat_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_mode: bool | None = None,
        call_type: str = "unspecified",
    ) -> str:
        """Send one chat completion request and return the message text.

        Only SynthesisError subclasses escape: SynthesisUnavailable for
        connection errors, timeouts and non-2xx replies, SynthesisMalformed
        when the reply body cannot be read.
        """
        settings = self._settings
        resolved_max_tokens = max_tokens or settings.synthesis_max_tokens
        resolved_temperature = (
            temperature if temperature is not None else settings.synthesis_temperature
        )
        resolved_json_mode = settings.synthesis_json_mode if json_mode is None else json_mode
        call_id = str(uuid4())
        call_started_at = datetime.now(timezone.utc).isoformat()

        kwargs: dict[str, Any] = dict(
            model=settings.synthesis_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=resolved_max_tokens,
            temperature=resolved_temperature,
        )
        if resolved_json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        def _log(output: Any, elapsed_ms: int, error: Exception | None) -> None:
            _append_call_log(
                settings,
                {
                    "ts_utc": datetime.now(timezone.utc).isoformat(),
                    "call_started_at_utc": call_started_at,
                    "call_id": call_id,
                    "call_type": call_type,
                    "base_url": settings.synthesis_base_url,
                    "model": settings.synthesis_model,
                    "max_tokens": resolved_max_tokens,
                    "temperature": resolved_temperature,
                    "system_prompt": system_prompt,
                    "user_prompt": user_prompt,
                    "output": output,
                    "latency_ms": elapsed_ms,
                    "success": error is None,
                    "error_type": error.__class__.__name__ if error else None,
                    "error_message": str(error) if error else None,
                },
            )

        async with self._semaphore:
            request_started = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    self._client.chat.completions.create(**kwargs),
                    timeout=settings.synthesis_timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                elapsed_ms = int((time.perf_counter() - request_started) * 1000)
                _log(None, elapsed_ms, exc)
                raise SynthesisUnavailable(
                    f"Synthesis call exceeded {settings.synthesis_timeout_seconds:.1f}s"
                ) from exc
            except APIResponseValidationError as exc:
                elapsed_ms = int((time.perf_counter() - request_started) * 1000)
                _log(None, elapsed_ms, exc)
                raise SynthesisMalformed(f"Unreadable synthesis response: {exc}") from exc
            except APIStatusError as exc:
                elapsed_ms = int((time.perf_counter() - request_started) * 1000)
                _log(None, elapsed_ms, exc)
                raise SynthesisUnavailable(
                    f"Synthesis service returned HTTP {exc.status_code}"
                ) from exc
            except APIConnectionError as exc:
                elapsed_ms = int((time.perf_counter() - request_started) * 1000)
                _log(None, elapsed_ms, exc)
                raise SynthesisUnavailable(f"Synthesis service unreachable: {exc}") from exc
            except APIError as exc:
                elapsed_ms = int((time.perf_counter() - request_started) * 1000)
                _log(None, elapsed_ms, exc)
                raise SynthesisUnavailable(f"Synthesis call failed: {exc}") from exc
            except ValueError as exc:
                # 2xx reply whose body is not valid JSON.
                elapsed_ms = int((time.perf_counter() - request_started) * 1000)
                _log(None, elapsed_ms, exc)
                raise SynthesisMalformed(f"Unreadable synthesis response: {exc}") from exc

            elapsed_ms = int((time.perf_counter() - request_started) * 1000)
            try:
                output = response.choices[0].message.content or ""
            except (AttributeError, IndexError, TypeError) as exc:
                _log(None, elapsed_ms, exc)
                raise SynthesisMalformed("Synthesis response carried no message content") from exc
            if not isinstance(output, str):
                error = TypeError(f"message content is {type(output).__name__}, not str")
                _log(None, elapsed_ms, error)
                raise SynthesisMalformed(f"Unreadable synthesis response: {error}")

            _log(output, elapsed_ms, None)
            logger.info(
                "Synthesis call %s (%s) finished in %sms", call_id, call_type, elapsed_ms
            )
            return output
