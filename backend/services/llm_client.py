"""LLM Client for Groq API integration."""
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Sequence
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, APIConnectionError
import logging

from config import GROQ_API_KEY, LLM_MODEL, LLM_TIMEOUT_SECONDS, LLM_MAX_TOKENS, LLM_TEMPERATURE
from models.session import ROLES, Message
from services.errors import CONNECTION_TIMEOUT, NETWORK_ERROR, RATE_LIMIT, SERVER_ERROR

logger = logging.getLogger(__name__)


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


class LLMClient:
    """Generates assistant replies through the Groq chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = LLM_MODEL,
        timeout_seconds: float = LLM_TIMEOUT_SECONDS,
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model name
            timeout_seconds: Hard ceiling for one reply, kept below the platform request limit
            max_tokens: Maximum tokens to generate per reply
            temperature: Sampling temperature
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = Groq(api_key=self.api_key, timeout=timeout_seconds, max_retries=0)
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="llm-reply")
        logger.info(f"LLMClient initialized successfully (model={model}, timeout={timeout_seconds}s)")

    @staticmethod
    def build_messages(history: Sequence[Message], system_prompt: Optional[str]) -> List[Dict[str, str]]:
        """
        Convert session history to chat-completion messages.

        Args:
            history: Conversation messages in order
            system_prompt: Optional system prompt placed first

        Returns:
            List of role/content dictionaries
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        for message in history:
            if message.role in ROLES:
                messages.append({"role": message.role, "content": message.content})
        return messages

    def generate_reply(self, history: Sequence[Message], system_prompt: Optional[str]) -> str:
        """
        Generate the next assistant turn.

        The API call runs on a worker thread and is raced against
        ``timeout_seconds``; on expiry it is abandoned.

        Args:
            history: Full turn history including the new user message
            system_prompt: Session system prompt

        Returns:
            Reply text

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        start_time = time.time()
        messages = self.build_messages(history, system_prompt)
        logger.debug(f"Sending {len(messages)} messages to model: {self.model}")

        future = self._executor.submit(self._complete, messages)
        try:
            text = future.result(timeout=self.timeout_seconds)
        except FuturesTimeoutError:
            future.cancel()
            raise self._error(
                CONNECTION_TIMEOUT,
                "Reply generation timed out. Please try again.",
                start_time,
                TimeoutError(f"no reply within {self.timeout_seconds}s")
            )
        except RateLimitError as e:
            error = self._error(
                RATE_LIMIT,
                "Rate limit exceeded. Please try again in a few moments.",
                start_time,
                e
            )
            error.error.details["retry_after"] = 60  # Suggest retry after 60 seconds
            raise error
        except APITimeoutError as e:
            raise self._error(CONNECTION_TIMEOUT, "Request timed out. Please try again.", start_time, e)
        except APIConnectionError as e:
            raise self._error(NETWORK_ERROR, "Unable to reach the language model service.", start_time, e)
        except AuthenticationError as e:
            raise self._error(SERVER_ERROR, "Authentication failed. Please check your API key.", start_time, e)
        except APIError as e:
            raise self._error(SERVER_ERROR, f"Groq API error: {str(e)}", start_time, e)
        except Exception as e:
            raise self._error(SERVER_ERROR, f"Unexpected error during generation: {str(e)}", start_time, e)

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Generated reply: model={self.model}, latency={latency_ms}ms")
        return text

    def _complete(self, messages: List[Dict[str, str]]) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature
        )
        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ValueError("No response received from the model")
        return text

    def _error(self, code: str, message: str, start_time: float, original: Exception) -> LLMClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "latency_ms": latency_ms,
                "original_error": str(original),
                "error_type": type(original).__name__
            }
        )
        logger.error(
            f"Reply generation failed: code={code}, model={self.model}, latency={latency_ms}ms, error={original}",
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)

    def close(self) -> None:
        """Stop the worker pool without waiting for abandoned calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)
