"""Async chat-completions client with bounded concurrency and retry logic."""

import asyncio
import json
import logging
import random
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import requests
from requests.exceptions import HTTPError

from trade_fusion.config import CompletionSettings
from trade_fusion.errors import CompletionError, CompletionRetryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Prompt:
    """System and user messages for one structured completion."""

    system: str
    user: str

    def to_messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


class StructuredCompleter(Protocol):
    """Generative collaborator: prompt plus output schema in, structured JSON out."""

    async def complete(self, prompt: Prompt, output_schema: dict[str, Any]) -> dict[str, Any]: ...


@dataclass
class RetryResult:
    """Result of a retried call."""

    result: Any
    attempts: int
    total_backoff_seconds: float


def _is_retryable_error(error: Exception) -> bool:
    """Rate limits, 5xx responses and transport failures are transient."""
    if isinstance(error, HTTPError) and error.response is not None:
        status_code = error.response.status_code
        # Other 4xx are request problems; retrying won't help
        return status_code == 429 or 500 <= status_code < 600

    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True

    error_str = str(error).lower()
    return any(pattern in error_str for pattern in ("rate limit", "too many requests", "temporar"))


def _retry_after(error: Exception) -> float | None:
    """Seconds requested by a Retry-After header, if the response carried one."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    try:
        seconds = float(headers.get("Retry-After"))
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def _calculate_backoff(attempt: int, base_delay: float, max_delay: float, floor: float | None = None) -> float:
    """Exponential backoff with +/-25% jitter, at least `floor`, capped at max_delay."""
    delay = base_delay * (2**attempt)
    delay += delay * 0.25 * (2 * random.random() - 1)
    if floor is not None:
        delay = max(delay, floor)
    return min(delay, max_delay)


def _extract_arguments(body: dict[str, Any], function_name: str) -> dict[str, Any]:
    """
    Pull the function-call arguments out of a chat-completions response.

    Accepts both `tool_calls` and the legacy `function_call` shape.

    Raises:
        CompletionError: If no parseable arguments object is present
    """
    try:
        message = body["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise CompletionError(f"Malformed completion response: {e}") from e

    raw_args: Any = None
    for call in message.get("tool_calls") or []:
        fn = call.get("function") or {}
        if fn.get("name") == function_name:
            raw_args = fn.get("arguments")
            break
    if raw_args is None and message.get("function_call"):
        raw_args = message["function_call"].get("arguments")

    if raw_args is None:
        raise CompletionError(f"No {function_name} call in completion response")

    if isinstance(raw_args, dict):
        return raw_args
    try:
        parsed = json.loads(raw_args)
    except (TypeError, ValueError) as e:
        raise CompletionError(f"Unparseable {function_name} arguments: {e}") from e
    if not isinstance(parsed, dict):
        raise CompletionError(f"{function_name} arguments are not an object")
    return parsed


class CompletionClient:
    """
    OpenAI-compatible chat-completions client using forced function calling.

    Requests are synchronous `requests` calls run on a private thread pool,
    bounded by a semaphore, and retried with exponential backoff on transient
    failures. One client is built per model/temperature pair.
    """

    def __init__(
        self,
        settings: CompletionSettings,
        model: str,
        temperature: float,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.settings = settings
        self.model = model
        self.temperature = temperature
        self._executor = executor or ThreadPoolExecutor(max_workers=settings.max_workers)
        self._semaphore = asyncio.Semaphore(settings.max_workers)

    @classmethod
    def for_synthesis(cls, settings: CompletionSettings) -> "CompletionClient":
        return cls(settings, settings.synthesis_model, settings.synthesis_temperature)

    @classmethod
    def for_review(cls, settings: CompletionSettings) -> "CompletionClient":
        return cls(settings, settings.review_model, settings.review_temperature)

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        response = requests.post(
            f"{self.settings.base_url}/chat/completions",
            headers=headers,
            json=payload,
            timeout=self.settings.request_timeout,
        )
        response.raise_for_status()
        return response.json()

    async def _retry_with_backoff(
        self,
        operation_name: str,
        sync_func: Callable[[], T],
    ) -> RetryResult:
        """
        Run a blocking call on the executor, retrying transient failures.

        Args:
            operation_name: Name for logging (e.g., "complete(synthesize_trade_narrative)")
            sync_func: Synchronous function to execute

        Returns:
            RetryResult with the call's result and attempt count

        Raises:
            CompletionRetryError: If all retries are exhausted
        """
        max_retries = self.settings.max_retries
        loop = asyncio.get_running_loop()
        total_backoff = 0.0

        for attempt in range(max_retries + 1):
            try:
                result = await loop.run_in_executor(self._executor, sync_func)
                return RetryResult(
                    result=result,
                    attempts=attempt + 1,
                    total_backoff_seconds=round(total_backoff, 2),
                )
            except Exception as e:
                if not _is_retryable_error(e):
                    raise
                if attempt >= max_retries:
                    logger.warning(f"{operation_name}: Failed after {attempt + 1} attempts. Last error: {e}")
                    raise CompletionRetryError(
                        f"Failed after {attempt + 1} attempts: {e}",
                        last_error=e,
                    ) from e

                delay = _calculate_backoff(
                    attempt, self.settings.base_delay, self.settings.max_delay, floor=_retry_after(e)
                )
                total_backoff += delay
                logger.info(
                    f"{operation_name}: Attempt {attempt + 1} failed ({e}). "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)

        raise CompletionRetryError(f"Failed after {max_retries + 1} attempts")

    async def complete(self, prompt: Prompt, output_schema: dict[str, Any]) -> dict[str, Any]:
        """
        Request a structured payload matching output_schema.

        Args:
            prompt: System and user messages
            output_schema: Function definition ({"name", "description", "parameters"})

        Returns:
            Parsed function-call arguments

        Raises:
            CompletionRetryError: If transient failures exhaust all retries
            CompletionError: If the response carries no parseable arguments
            HTTPError: For non-retryable HTTP errors
        """
        function_name = output_schema["name"]
        payload = {
            "model": self.model,
            "messages": prompt.to_messages(),
            "tools": [{"type": "function", "function": output_schema}],
            "tool_choice": {"type": "function", "function": {"name": function_name}},
            "temperature": self.temperature,
            "max_tokens": self.settings.max_tokens,
        }

        async with self._semaphore:
            retry_result = await self._retry_with_backoff(
                f"complete({function_name})",
                lambda: self._post(payload),
            )

        if retry_result.attempts > 1:
            logger.info(
                f"complete({function_name}) succeeded after {retry_result.attempts} attempts "
                f"({retry_result.total_backoff_seconds}s backoff)"
            )
        return _extract_arguments(retry_result.result, function_name)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
