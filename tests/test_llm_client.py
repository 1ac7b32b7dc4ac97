"""Tests for companion.llm.client: provider cascade and error mapping."""

import dataclasses
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from google.api_core import exceptions as google_exceptions
from groq import APITimeoutError

from companion.core.exceptions import GenerationError, LLMConfigurationError, RateLimitExceeded
from companion.database.models import NsfwTendency
from companion.llm import client as client_module
from companion.llm.client import LLMClient


def _groq_answer(text: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class _BlockedResponse:
    prompt_feedback = "block_reason: SAFETY"

    @property
    def text(self) -> str:
        raise ValueError("no parts")


@pytest.fixture
def gemini():
    """Patched Gemini module surface; yields the GenerativeModel mock."""
    with patch.object(client_module.genai, "configure"), \
            patch.object(client_module.genai, "GenerationConfig"), \
            patch.object(client_module.genai, "GenerativeModel") as model_cls:
        yield model_cls


@pytest.fixture
def groq_cls():
    with patch.object(client_module, "Groq") as cls:
        yield cls


@pytest.fixture
def client_settings(settings):
    return dataclasses.replace(settings, google_api_key="test-key", groq_api_key="")


def _client(settings, groq: bool = False) -> LLMClient:
    if groq:
        settings = dataclasses.replace(settings, groq_api_key="groq-key")
    return LLMClient(settings)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfiguration:
    def test_missing_google_key_fails_closed(self, settings, gemini) -> None:
        with pytest.raises(LLMConfigurationError):
            LLMClient(dataclasses.replace(settings, google_api_key=""))

    def test_groq_built_only_with_key(self, client_settings, gemini, groq_cls) -> None:
        assert _client(client_settings).groq_client is None
        assert _client(client_settings, groq=True).groq_client is groq_cls.return_value
        groq_cls.assert_called_once_with(
            api_key="groq-key", timeout=client_settings.llm_timeout_seconds
        )


# ---------------------------------------------------------------------------
# generate_turn
# ---------------------------------------------------------------------------

class TestGenerateTurn:
    def _send(self, gemini) -> MagicMock:
        return gemini.return_value.start_chat.return_value.send_message

    def test_returns_text_with_timeout(self, client_settings, gemini) -> None:
        send = self._send(gemini)
        send.return_value = SimpleNamespace(text=' {"reply": "Hi"} ')
        history = [{"role": "USER", "text": "Hello"}, {"role": "ASSISTANT", "text": "Hey"}]

        text = _client(client_settings).generate_turn("inst", history, "How are you?", NsfwTendency.NONE)

        assert text == '{"reply": "Hi"}'
        assert send.call_args.kwargs["request_options"] == {"timeout": client_settings.llm_timeout_seconds}
        gemini.return_value.start_chat.assert_called_once_with(history=[
            {"role": "user", "parts": ["Hello"]},
            {"role": "model", "parts": ["Hey"]},
        ])

    @pytest.mark.parametrize("error", [
        google_exceptions.ResourceExhausted("quota exhausted"),
        google_exceptions.TooManyRequests("slow down"),
        RuntimeError("429 quota exceeded for this project"),
    ])
    def test_quota_errors_become_rate_limit(self, client_settings, gemini, error) -> None:
        self._send(gemini).side_effect = error
        with pytest.raises(RateLimitExceeded) as excinfo:
            _client(client_settings).generate_turn("inst", [], "Hi", NsfwTendency.NONE)
        assert excinfo.value.retry_after == client_settings.rate_limit_retry_seconds
        assert excinfo.value.__cause__ is error

    def test_deadline_becomes_generation_error(self, client_settings, gemini) -> None:
        self._send(gemini).side_effect = google_exceptions.DeadlineExceeded("too slow")
        with pytest.raises(GenerationError):
            _client(client_settings).generate_turn("inst", [], "Hi", NsfwTendency.NONE)

    def test_unrelated_errors_propagate(self, client_settings, gemini) -> None:
        self._send(gemini).side_effect = KeyError("boom")
        with pytest.raises(KeyError):
            _client(client_settings).generate_turn("inst", [], "Hi", NsfwTendency.NONE)

    @pytest.mark.parametrize("response", [SimpleNamespace(text="  "), _BlockedResponse()])
    def test_no_text_is_generation_error(self, client_settings, gemini, response) -> None:
        self._send(gemini).return_value = response
        with pytest.raises(GenerationError):
            _client(client_settings).generate_turn("inst", [], "Hi", NsfwTendency.NONE)


# ---------------------------------------------------------------------------
# generate_text
# ---------------------------------------------------------------------------

class TestGenerateText:
    def test_gemini_answer(self, client_settings, gemini) -> None:
        gemini.return_value.generate_content.return_value = SimpleNamespace(text=" A title ")
        assert _client(client_settings).generate_text("prompt") == "A title"

    def test_empty_gemini_falls_back_to_groq(self, client_settings, gemini, groq_cls) -> None:
        gemini.return_value.generate_content.return_value = SimpleNamespace(text="")
        create = groq_cls.return_value.chat.completions.create
        create.return_value = _groq_answer(" From Groq ")

        text = _client(client_settings, groq=True).generate_text("prompt", system_instruction="sys")

        assert text == "From Groq"
        assert create.call_args.kwargs["model"] == client_settings.llm_model_fallback
        assert create.call_args.kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "prompt"},
        ]

    def test_gemini_quota_falls_back_to_groq(self, client_settings, gemini, groq_cls) -> None:
        gemini.return_value.generate_content.side_effect = google_exceptions.ResourceExhausted("quota")
        groq_cls.return_value.chat.completions.create.return_value = _groq_answer("Backup")
        assert _client(client_settings, groq=True).generate_text("prompt") == "Backup"

    def test_quota_without_fallback_raises_rate_limit(self, client_settings, gemini) -> None:
        gemini.return_value.generate_content.side_effect = google_exceptions.ResourceExhausted("quota")
        with pytest.raises(RateLimitExceeded):
            _client(client_settings).generate_text("prompt")

    def test_every_provider_failing_raises_last_error(self, client_settings, gemini, groq_cls) -> None:
        gemini.return_value.generate_content.side_effect = google_exceptions.ResourceExhausted("quota")
        groq_cls.return_value.chat.completions.create.side_effect = APITimeoutError(
            request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
        )
        with pytest.raises(GenerationError):
            _client(client_settings, groq=True).generate_text("prompt")

    def test_empty_everywhere_is_generation_error(self, client_settings, gemini) -> None:
        gemini.return_value.generate_content.return_value = SimpleNamespace(text="")
        with pytest.raises(GenerationError):
            _client(client_settings).generate_text("prompt")


def test_count_tokens_uses_gemini_tokenizer(client_settings, gemini) -> None:
    gemini.return_value.count_tokens.return_value = SimpleNamespace(total_tokens=42)
    assert _client(client_settings).count_tokens([{"role": "USER", "text": "Hello"}]) == 42
    gemini.return_value.count_tokens.assert_called_once_with(
        [{"role": "user", "parts": ["Hello"]}],
        request_options={"timeout": client_settings.llm_timeout_seconds},
    )
