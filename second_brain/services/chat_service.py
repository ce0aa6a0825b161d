"""
Chat service: answer a question using only the supplied note context.

The model sees a fixed system instruction, the trailing chat history and one
user turn that carries the context block plus the new message. Calls that
are throttled by the provider are retried with exponential backoff.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, TypeVar

from openai import OpenAI

from ..config import Config
from .models import ChatTurn
from .openai_provider import AIConfigurationError, chat_model, get_openai_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_INSTRUCTION = (
    "You may ONLY use the context window and chat history to answer.\n"
    "If information is missing, say:\n"
    "'I can only answer using the content you provided. "
    "Please attach notes or selected text as context.'\n"
    "Do not hallucinate facts not found in the context."
)

NO_CONTEXT_PLACEHOLDER = "No context provided."

RATE_LIMIT_MARKERS = ("429", "RATE_LIMIT_EXCEEDED", "Quota exceeded")
QUOTA_NOT_CONFIGURED_MARKERS = ('quota_limit_value":"0"', "insufficient_quota")


def _status_code(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_quota_not_configured(exc: BaseException) -> bool:
    """
    True when the provider reports that the account has no usable quota.

    Retrying cannot help here, so these are never treated as rate limits.
    """
    if getattr(exc, "code", None) == "insufficient_quota":
        return True
    message = str(exc)
    return any(marker in message for marker in QUOTA_NOT_CONFIGURED_MARKERS)


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for throttling errors (HTTP 429 or a rate-limit/quota marker in the message)."""
    if is_quota_not_configured(exc):
        return False
    if _status_code(exc) == 429:
        return True
    message = str(exc)
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def retry_with_backoff(
    fn: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn``, retrying rate-limited attempts with exponential backoff.

    Args:
        fn: Zero-argument callable to invoke
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry in seconds; doubled each time
        sleep: Sleep function (injected by tests)

    Returns:
        Whatever ``fn`` returns

    Raises:
        The last error if it is not a rate limit or retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if not is_rate_limit_error(e) or attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Rate limit hit, retrying in %.1fs (attempt %d/%d)", delay, attempt, max_retries
            )
            sleep(delay)


def build_messages(
    message: str,
    context_window: str | None,
    chat_history: Iterable[ChatTurn] | None,
    history_limit: int = 10,
) -> list[dict[str, str]]:
    """Assemble the chat-completion messages for one question."""
    history = list(chat_history or [])
    if history_limit > 0:
        history = history[-history_limit:]
    else:
        history = []

    context = context_window or NO_CONTEXT_PLACEHOLDER

    messages = [{"role": "system", "content": SYSTEM_INSTRUCTION}]
    messages.extend({"role": turn.role, "content": turn.content} for turn in history)
    messages.append({"role": "user", "content": f"CONTEXT:\n{context}\n\nUSER:\n{message}\n"})
    return messages


class ChatService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: OpenAI | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        history_limit: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._api_key = api_key
        self._client = client
        self.model = model or chat_model()
        self.max_retries = Config.AI_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = Config.AI_RETRY_BASE_DELAY if base_delay is None else base_delay
        self.history_limit = Config.CHAT_HISTORY_LIMIT if history_limit is None else history_limit
        self.sleep = sleep

    def is_configured(self) -> bool:
        return self._client is not None or bool(self._api_key) or Config.ai_enabled()

    @property
    def client(self) -> OpenAI:
        # Built lazily so the app starts without an API key; chat then fails fast.
        if self._client is None:
            if self._api_key:
                self._client = OpenAI(api_key=self._api_key, max_retries=0)
            else:
                self._client = get_openai_client()
        return self._client

    def reply(
        self,
        message: str,
        context_window: str | None = None,
        chat_history: Iterable[ChatTurn] | None = None,
    ) -> str:
        if not self.is_configured():
            raise AIConfigurationError("OPENAI_API_KEY is not configured")

        messages = build_messages(message, context_window, chat_history, self.history_limit)

        def _call():
            return self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.2,
            )

        completion = retry_with_backoff(
            _call,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            sleep=self.sleep,
        )
        text = completion.choices[0].message.content
        if not text:
            raise ValueError("OpenAI returned empty reply")
        return text
