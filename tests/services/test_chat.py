"""
Tests for the chat relay: prompt assembly, error classification and
retry-with-backoff. The OpenAI client is replaced by MagicMock.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from second_brain.services.chat_service import (
    NO_CONTEXT_PLACEHOLDER,
    SYSTEM_INSTRUCTION,
    ChatService,
    build_messages,
    is_quota_not_configured,
    is_rate_limit_error,
    retry_with_backoff,
)
from second_brain.services.models import ChatRequest, ChatTurn
from second_brain.services.openai_provider import AIConfigurationError


class _ProviderError(Exception):
    def __init__(self, message: str = "provider error", status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


def _completion(text: str):
    completion = MagicMock()
    completion.choices[0].message.content = text
    return completion


def _turns(n: int) -> list[ChatTurn]:
    return [ChatTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}") for i in range(n)]


# ============================================================================
# Error classification
# ============================================================================


@pytest.mark.parametrize(
    "error,expected",
    [
        (_ProviderError(status_code=429), True),
        (_ProviderError("HTTP 429 Too Many Requests"), True),
        (_ProviderError("RATE_LIMIT_EXCEEDED"), True),
        (_ProviderError("Quota exceeded for metric"), True),
        (_ProviderError("bad request", status_code=400), False),
        (ValueError("boom"), False),
        (_ProviderError("quota", status_code=429, code="insufficient_quota"), False),
    ],
)
def test_is_rate_limit_error(error, expected):
    assert is_rate_limit_error(error) is expected


def test_is_quota_not_configured():
    assert is_quota_not_configured(_ProviderError('{"quota_limit_value":"0"}'))
    assert is_quota_not_configured(_ProviderError(code="insufficient_quota"))
    assert not is_quota_not_configured(_ProviderError(status_code=429))


# ============================================================================
# retry_with_backoff
# ============================================================================


def test_retry_succeeds_after_two_rate_limits_with_1s_then_2s():
    sleeps: list[float] = []
    fn = MagicMock(side_effect=[_ProviderError(status_code=429), _ProviderError(status_code=429), "ok"])

    assert retry_with_backoff(fn, max_retries=3, base_delay=1.0, sleep=sleeps.append) == "ok"
    assert fn.call_count == 3
    assert sleeps == [1.0, 2.0]
    assert sum(sleeps) == pytest.approx(3.0)


def test_retry_gives_up_after_three_retries():
    sleeps: list[float] = []
    fn = MagicMock(side_effect=_ProviderError(status_code=429))

    with pytest.raises(_ProviderError):
        retry_with_backoff(fn, max_retries=3, base_delay=1.0, sleep=sleeps.append)

    assert fn.call_count == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_retry_does_not_retry_other_errors():
    sleeps: list[float] = []
    fn = MagicMock(side_effect=_ProviderError("server exploded", status_code=500))

    with pytest.raises(_ProviderError):
        retry_with_backoff(fn, sleep=sleeps.append)

    assert fn.call_count == 1
    assert sleeps == []


def test_retry_does_not_retry_missing_quota():
    fn = MagicMock(side_effect=_ProviderError("no quota", status_code=429, code="insufficient_quota"))

    with pytest.raises(_ProviderError):
        retry_with_backoff(fn, sleep=lambda _: None)

    assert fn.call_count == 1


# ============================================================================
# Prompt assembly
# ============================================================================


def test_build_messages_layout():
    messages = build_messages(
        "When is it due?",
        "<p>Report due Friday</p>",
        [ChatTurn(role="user", content="hi"), ChatTurn(role="assistant", content="hello")],
    )

    assert messages[0] == {"role": "system", "content": SYSTEM_INSTRUCTION}
    assert messages[1] == {"role": "user", "content": "hi"}
    assert messages[2] == {"role": "assistant", "content": "hello"}
    last = messages[-1]
    assert last["role"] == "user"
    assert last["content"].startswith("CONTEXT:\n<p>Report due Friday</p>")
    assert last["content"].rstrip().endswith("USER:\nWhen is it due?")


def test_build_messages_uses_placeholder_without_context():
    messages = build_messages("hi", None, None)
    assert len(messages) == 2
    assert NO_CONTEXT_PLACEHOLDER in messages[-1]["content"]


def test_build_messages_forwards_only_last_ten_turns():
    history = _turns(15)
    messages = build_messages("q", "ctx", history, history_limit=10)

    forwarded = [m["content"] for m in messages[1:-1]]
    assert forwarded == [f"turn {i}" for i in range(5, 15)]


def test_chat_turn_roles_normalize_to_assistant():
    assert ChatTurn(role="model", content="x").role == "assistant"
    assert ChatTurn(role="user", content="x").role == "user"


def test_chat_request_drops_malformed_history_and_bad_context():
    request = ChatRequest.model_validate(
        {
            "message": "hi",
            "contextWindow": 12,
            "chatHistory": [{"role": "user", "content": "a"}, {"role": None, "content": "b"}, "junk", {"role": "user"}],
        }
    )

    assert request.context_window is None
    assert [(t.role, t.content) for t in request.chat_history] == [("user", "a"), ("assistant", "b")]


@pytest.mark.parametrize("body", [{}, {"message": "   "}, {"message": None}, {"message": 5}])
def test_chat_request_requires_a_message(body):
    with pytest.raises(ValidationError):
        ChatRequest.model_validate(body)


# ============================================================================
# ChatService
# ============================================================================


def test_reply_returns_model_text_and_retries_rate_limits():
    client = MagicMock()
    client.chat.completions.create.side_effect = [
        _ProviderError(status_code=429),
        _ProviderError(status_code=429),
        _completion("The report is due Friday."),
    ]
    sleeps: list[float] = []
    service = ChatService(client=client, model="test-model", sleep=sleeps.append, max_retries=3, base_delay=1.0)

    reply = service.reply("When?", context_window="<p>Report due Friday</p>", chat_history=_turns(12))

    assert reply == "The report is due Friday."
    assert sleeps == [1.0, 2.0]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    # system + 10 history turns + the new message
    assert len(kwargs["messages"]) == 12


def test_reply_raises_on_empty_completion():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("")
    service = ChatService(client=client, model="m", sleep=lambda _: None)

    with pytest.raises(ValueError):
        service.reply("hi")


def test_reply_without_api_key_fails_fast(monkeypatch):
    from second_brain.config import Config

    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
    service = ChatService(model="m")

    assert service.is_configured() is False
    with pytest.raises(AIConfigurationError):
        service.reply("hi")
