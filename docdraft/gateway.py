"""Resilient model invocation with per-model retries and a fallback model."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import openai
from openai import OpenAI

from .config import config
from .errors import ModelError, ModelUnavailable, TransientModelOverload

logger = config.get_logger(__name__)

CAPACITY_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 529})


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait after the given failed attempt (1-based)."""  # noqa: DOC201
    return float(2**attempt)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to call one model and how long to wait in between."""

    attempts: int = 3
    backoff: Callable[[int], float] = field(default=exponential_backoff)


class ModelHandle(Protocol):
    """Anything that turns a prompt into text."""

    name: str

    def generate(self, prompt: str, system: str | None = None) -> str: ...


def is_capacity_error(error: Exception) -> bool:
    """Check whether an OpenAI client error signals a transient overload.

    Returns:
        True for rate limits, overload status codes and timeouts.
    """
    if isinstance(error, (openai.RateLimitError, openai.APITimeoutError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code in CAPACITY_STATUS_CODES
    return False


class ChatModel:
    """A single OpenAI chat model."""

    def __init__(
        self,
        model: str,
        client: OpenAI | None = None,
        api_key: str | None = None,
    ) -> None:
        """Initialize the handle.

        Args:
            model: Chat completion model name.
            client: Shared OpenAI client. Created from config when None.
            api_key: OpenAI API key used when a client has to be created.
        """
        self.name = model
        if client is None:
            default_headers = config.get_api_headers()
            client = OpenAI(
                api_key=api_key or config.get_openai_api_key(),
                base_url=config.OPENAI_BASE_URL,
                timeout=config.OPENAI_TIMEOUT,
                default_headers=default_headers or None,
            )
        self.client = client

    def generate(self, prompt: str, system: str | None = None) -> str:
        """Run one chat completion.

        Returns:
            The stripped completion text.

        Raises:
            TransientModelOverload: If the model is over capacity.
            ModelError: For any other failure, including an empty answer.
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.client.chat.completions.create(
                model=self.name,
                messages=messages,
                max_tokens=config.CHAT_MAX_TOKENS,
                temperature=config.CHAT_TEMPERATURE,
            )
        except openai.OpenAIError as e:
            if is_capacity_error(e):
                msg = f"{self.name} is overloaded: {e}"
                raise TransientModelOverload(msg) from e
            msg = f"{self.name} request failed: {e}"
            raise ModelError(msg) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            msg = f"{self.name} returned an empty response"
            raise ModelError(msg)
        return content.strip()


class ModelGateway:
    """Calls the primary model and escalates to the fallback model.

    Each model gets the same retry loop: capacity failures are retried after
    an increasing pause, any other failure ends that model's turn at once.
    Only when both loops are exhausted does the caller see an error.
    """

    def __init__(
        self,
        primary: ModelHandle,
        fallback: ModelHandle,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the gateway.

        Args:
            primary: High quality model tried first.
            fallback: Faster model tried when the primary gives up.
            policy: Retry policy shared by both models.
            sleep: Blocking wait used between attempts.
        """
        self.primary = primary
        self.fallback = fallback
        self.policy = policy or RetryPolicy(attempts=config.MODEL_MAX_ATTEMPTS)
        self._sleep = sleep

    @classmethod
    def from_config(cls, api_key: str | None = None) -> ModelGateway:
        """Build a gateway over the configured OpenAI models.

        Returns:
            Gateway sharing one OpenAI client between both models.
        """
        primary = ChatModel(config.CHAT_MODEL, api_key=api_key)
        fallback = ChatModel(config.FALLBACK_CHAT_MODEL, client=primary.client)
        return cls(primary, fallback)

    def invoke(self, prompt: str, system: str | None = None) -> str:
        """Get a completion, retrying and falling back as needed.

        Returns:
            The model's text response.

        Raises:
            ModelUnavailable: If both models failed; chained to the last error.
        """
        last_error: Exception | None = None
        for handle in (self.primary, self.fallback):
            try:
                return self._run(handle, prompt, system)
            except ModelError as e:
                last_error = e
                if handle is self.primary:
                    logger.warning(
                        "Primary model %s failed (%s); switching to fallback %s",
                        handle.name,
                        e,
                        self.fallback.name,
                    )

        logger.error("Both models failed; last error: %s", last_error)
        msg = "No model could answer the request"
        raise ModelUnavailable(msg) from last_error

    def _run(self, handle: ModelHandle, prompt: str, system: str | None) -> str:
        """Retry loop for a single model.

        Returns:
            The model's text response.

        Raises:
            ModelError: The last error once the attempts are used up or a
                non-capacity failure occurs.
        """
        attempts = max(1, self.policy.attempts)
        for attempt in range(1, attempts + 1):
            try:
                return handle.generate(prompt, system=system)
            except TransientModelOverload:
                if attempt == attempts:
                    raise
                wait = self.policy.backoff(attempt)
                logger.warning(
                    "Model %s overloaded (attempt %d/%d); retrying in %.1fs",
                    handle.name,
                    attempt,
                    attempts,
                    wait,
                )
                self._sleep(wait)
            except ModelError:
                logger.exception("Model %s failed on attempt %d", handle.name, attempt)
                raise
            except Exception as e:
                logger.exception("Unexpected error from model %s", handle.name)
                msg = f"{handle.name} raised {type(e).__name__}: {e}"
                raise ModelError(msg) from e

        msg = f"{handle.name} produced no response"
        raise ModelError(msg)
