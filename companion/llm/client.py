"""
LLM Client for Google Gemini, with Groq as a fallback provider.

This module provides the only interface the services use to reach an AI
backend:
- generate_turn  : structured, safety-filtered conversation turn (Gemini)
- generate_text  : one-shot text prompt (Gemini, then Groq on failure)
- count_tokens   : authoritative token count from Gemini's tokenizer

Every request carries a bounded timeout. Backend quota errors become
RateLimitExceeded; timeouts and empty answers become GenerationError.
"""
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from groq import APITimeoutError, Groq, RateLimitError
from typing_extensions import TypedDict

from companion.core.config import Settings, get_settings
from companion.core.exceptions import (
    CompanionException,
    GenerationError,
    LLMConfigurationError,
    RateLimitExceeded,
)
from companion.core.logging_config import get_logger
from companion.llm.safety import safety_settings_for

logger = get_logger(__name__)

_ROLE_TO_GEMINI = {"USER": "user", "ASSISTANT": "model"}
_ROLE_TO_GROQ = {"USER": "user", "ASSISTANT": "assistant"}


class TurnReplySchema(TypedDict):
    """Response schema enforced on conversation turns."""
    reply: str
    userCharacterMemory: str


class LLMClient:
    """
    Client for the conversation backend.

    Example:
        >>> client = LLMClient()
        >>> raw = client.generate_turn(instruction, history, "Hi!", NsfwTendency.NONE)
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Configure Gemini (required) and Groq (optional).

        Raises:
            LLMConfigurationError: If GOOGLE_API_KEY is not set
        """
        self.settings = settings or get_settings()
        if not self.settings.google_api_key:
            raise LLMConfigurationError(
                "GOOGLE_API_KEY is not set in environment variables."
            )

        genai.configure(api_key=self.settings.google_api_key)
        self.model_name = self.settings.llm_model
        self.timeout = self.settings.llm_timeout_seconds

        self.groq_client: Optional[Groq] = None
        if self.settings.groq_api_key:
            self.groq_client = Groq(
                api_key=self.settings.groq_api_key,
                timeout=self.settings.llm_timeout_seconds,
            )

        logger.info(
            f"LLM client initialized (model={self.model_name}, "
            f"groq_fallback={'on' if self.groq_client else 'off'}, "
            f"timeout={self.timeout}s)"
        )

    # ==================== PUBLIC API ====================

    def generate_turn(
        self,
        system_instruction: str,
        history: Sequence[Dict[str, str]],
        message: str,
        nsfw_tendency: Any,
    ) -> str:
        """
        Generate one in-character turn as structured JSON text.

        Args:
            system_instruction: Fully rendered session instruction
            history: Prior messages as {"role": "USER"|"ASSISTANT", "text": ...}
            message: The new user message
            nsfw_tendency: Character tendency, mapped to safety thresholds

        Returns:
            Raw text returned by the model (expected to be JSON)

        Raises:
            RateLimitExceeded: Backend quota / 429
            GenerationError: Timeout or no text returned
        """
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_instruction,
            safety_settings=safety_settings_for(nsfw_tendency),
        )
        generation_config = genai.GenerationConfig(
            temperature=self.settings.llm_temperature,
            max_output_tokens=self.settings.llm_max_tokens,
            response_mime_type="application/json",
            response_schema=TurnReplySchema,
        )

        try:
            chat = model.start_chat(history=self._to_gemini_history(history))
            response = chat.send_message(
                message,
                generation_config=generation_config,
                request_options={"timeout": self.timeout},
            )
        except Exception as e:
            translated = self._translate_error(e, "gemini")
            if translated is e:
                raise
            raise translated from e

        text = self._response_text(response)
        if not text:
            raise GenerationError("No response text received from AI")
        return text

    def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        nsfw_tendency: Any = None,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
    ) -> str:
        """
        Run a one-shot text prompt, falling back to Groq when Gemini fails.

        Returns:
            Non-empty stripped text

        Raises:
            RateLimitExceeded / GenerationError: When every provider failed
        """
        providers = ["gemini"]
        if self.groq_client is not None:
            providers.append("groq")

        last_error: Optional[Exception] = None
        for attempt, provider in enumerate(providers):
            if attempt > 0:
                logger.info(f"Falling back to {provider} ({self.settings.llm_model_fallback})...")
            try:
                if provider == "gemini":
                    text = self._generate_gemini_text(
                        prompt, system_instruction, nsfw_tendency, temperature, max_output_tokens
                    )
                else:
                    text = self._generate_groq_text(
                        prompt, system_instruction, temperature, max_output_tokens
                    )
                if text:
                    return text
                last_error = GenerationError(f"Empty response from {provider}")
                logger.warning(f"Provider returned no text: {provider}")
            except Exception as e:
                translated = self._translate_error(e, provider)
                log = logger.warning if isinstance(translated, RateLimitExceeded) else logger.error
                log(f"Provider failed ({provider}): {e}")
                last_error = translated

        raise last_error if last_error else GenerationError()

    def count_tokens(self, contents: Any) -> int:
        """
        Count tokens with Gemini's tokenizer.

        Args:
            contents: A string or a list of {"role", "text"} messages
        """
        model = genai.GenerativeModel(model_name=self.model_name)
        if isinstance(contents, str):
            payload: Any = contents
        else:
            payload = self._to_gemini_history(contents)
        result = model.count_tokens(payload, request_options={"timeout": self.timeout})
        return int(result.total_tokens)

    # ==================== PROVIDERS ====================

    def _generate_gemini_text(
        self,
        prompt: str,
        system_instruction: Optional[str],
        nsfw_tendency: Any,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_instruction,
            safety_settings=safety_settings_for(nsfw_tendency),
        )
        response = model.generate_content(
            prompt,
            generation_config=genai.GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_output_tokens,
            ),
            request_options={"timeout": self.timeout},
        )
        return self._response_text(response)

    def _generate_groq_text(
        self,
        prompt: str,
        system_instruction: Optional[str],
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        response = self.groq_client.chat.completions.create(
            model=self.settings.llm_model_fallback,
            messages=messages,
            temperature=temperature,
            max_tokens=max_output_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    # ==================== HELPERS ====================

    @staticmethod
    def _to_gemini_history(history: Sequence[Dict[str, str]]) -> List[Dict[str, Any]]:
        return [
            {"role": _ROLE_TO_GEMINI.get(msg["role"], "user"), "parts": [msg["text"]]}
            for msg in history
        ]

    @staticmethod
    def _response_text(response: Any) -> str:
        """Extract text; a blocked or empty candidate yields ''."""
        try:
            return (response.text or "").strip()
        except ValueError:
            # .text raises when the candidate has no parts (e.g. safety block)
            feedback = getattr(response, "prompt_feedback", None)
            logger.warning(f"Gemini returned no usable text (feedback={feedback})")
            return ""

    def _translate_error(self, error: Exception, provider: str) -> Exception:
        """Map provider exceptions onto the engine's error taxonomy."""
        if isinstance(error, CompanionException):
            return error
        if isinstance(error, (google_exceptions.ResourceExhausted,
                              google_exceptions.TooManyRequests,
                              RateLimitError)):
            return RateLimitExceeded(retry_after=self.settings.rate_limit_retry_seconds)
        if isinstance(error, (google_exceptions.DeadlineExceeded,
                              APITimeoutError,
                              TimeoutError)):
            return GenerationError(f"The AI backend timed out ({provider})")

        message = str(error).lower()
        if "429" in message or "quota" in message or "rate limit" in message:
            return RateLimitExceeded(retry_after=self.settings.rate_limit_retry_seconds)
        return error
