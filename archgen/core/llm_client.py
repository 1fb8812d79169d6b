"""
OpenAI Streaming Client for ArchGen.

Thin async wrapper around the OpenAI Responses API used by the conversation
controller.

Features:
- Streaming ``responses.create`` with function tools
- API key, timeout and retry count loaded from settings
- SDK errors mapped to TransportError (with connection flag and suggestion)
- Token usage tracking with cost estimation (per controller)
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from dataclasses import dataclass

import openai

from archgen.core.settings import SettingsManager, get_settings_manager

logger = logging.getLogger(__name__)


CONNECTION_SUGGESTION = "This appears to be a temporary connection issue. Please try again in a few moments."
GENERIC_SUGGESTION = "An unexpected error occurred. Please check the server logs for details."


class TransportError(Exception):
    """
    Raised when the upstream model call fails or times out.

    Attributes:
        error_type: Name of the underlying SDK error.
        is_connection_error: True for network/timeout failures.
        suggestion: User-facing hint.
    """

    def __init__(
        self,
        message: str,
        error_type: str = "TransportError",
        is_connection_error: bool = False,
        suggestion: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.is_connection_error = is_connection_error
        self.suggestion = suggestion or (CONNECTION_SUGGESTION if is_connection_error else GENERIC_SUGGESTION)

    def to_debug(self) -> Dict[str, Any]:
        return {
            "type": self.error_type,
            "isConnectionError": self.is_connection_error,
            "suggestion": self.suggestion,
        }


# ============================================================================
# USAGE MODELS
# ============================================================================

@dataclass
class TokenUsage:
    """
    Token usage with cost estimation.

    Attributes:
        prompt_tokens: Number of input tokens.
        completion_tokens: Number of output tokens.
        total_tokens: Total tokens (prompt + completion).
        estimated_cost_usd: Estimated cost in USD.
        model: Model name that was used.
    """
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost_usd: float
    model: str = ""


class SessionCostTracker:
    """
    Accumulates token usage and cost across a session, with per-model breakdown.

    Example:
        >>> tracker = SessionCostTracker()
        >>> tracker.add(usage)
        >>> print(tracker.summary())
        "3 calls, 5,432 tokens, $0.0156"
    """

    def __init__(self):
        self.usage_by_model: Dict[str, Dict[str, Any]] = {}
        self.total_prompt_tokens: int = 0
        self.total_completion_tokens: int = 0
        self.total_cost_usd: float = 0.0
        self.call_count: int = 0

    def add(self, usage: TokenUsage) -> None:
        """
        Add token usage from one completed response.

        Args:
            usage: TokenUsage for the response.
        """
        model = usage.model or "unknown"

        stats = self.usage_by_model.setdefault(model, {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
            "cost_usd": 0.0,
            "call_count": 0
        })
        stats["prompt_tokens"] += usage.prompt_tokens
        stats["completion_tokens"] += usage.completion_tokens
        stats["total_tokens"] += usage.total_tokens
        stats["cost_usd"] += usage.estimated_cost_usd
        stats["call_count"] += 1

        self.total_prompt_tokens += usage.prompt_tokens
        self.total_completion_tokens += usage.completion_tokens
        self.total_cost_usd += usage.estimated_cost_usd
        self.call_count += 1

    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.call_count,
            "prompt_tokens": self.total_prompt_tokens,
            "completion_tokens": self.total_completion_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": round(self.total_cost_usd, 6),
        }

    def summary(self) -> str:
        """Get human-readable summary string."""
        return f"{self.call_count} calls, {self.total_tokens:,} tokens, ${self.total_cost_usd:.4f}"


# ============================================================================
# LLM CLIENT
# ============================================================================

class LLMClient:
    """
    Async OpenAI Responses client with streaming.

    Example:
        >>> client = LLMClient()
        >>> async for event in client.stream_response(
        ...     model="gpt-5",
        ...     input=[{"role": "user", "content": "Build a GCP web app"}],
        ...     instructions="You are an architecture assistant.",
        ...     tools=[BATCH_UPDATE_TOOL],
        ... ):
        ...     print(event["type"])
        response.created
        response.output_item.added
        ...
    """

    # Pricing per 1M tokens (input_price, output_price) in USD
    MODEL_PRICING = {
        "gpt-5-mini": (0.25, 2.00),
        "gpt-5-nano": (0.05, 0.40),
        "gpt-5": (1.25, 10.00),
        "o4-mini": (1.10, 4.40),
        "gpt-4.1": (2.00, 8.00),
    }

    def __init__(self, settings: Optional[SettingsManager] = None):
        """
        Initialize LLM client.

        Args:
            settings: Settings source (defaults to the global manager).
        """
        self.settings = settings or get_settings_manager()
        self.openai_client: Optional[openai.AsyncOpenAI] = None

    def calculate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        """
        Calculate estimated cost in USD for one response.

        Args:
            model: Model identifier.
            prompt_tokens: Number of input tokens.
            completion_tokens: Number of output tokens.

        Returns:
            Estimated cost in USD (rounded to 6 decimal places).
        """
        # Longest prefix first so gpt-5-mini does not match gpt-5
        for prefix in sorted(self.MODEL_PRICING, key=len, reverse=True):
            if model.startswith(prefix):
                input_price, output_price = self.MODEL_PRICING[prefix]
                cost = (prompt_tokens / 1_000_000) * input_price
                cost += (completion_tokens / 1_000_000) * output_price
                return round(cost, 6)

        logger.warning(f"No pricing found for model '{model}', returning $0 cost estimate")
        return 0.0

    def usage_from_response(self, response: Dict[str, Any]) -> Optional[TokenUsage]:
        """Build TokenUsage from a completed response dict (None if absent)."""
        usage = response.get("usage") or {}
        if not usage:
            return None
        prompt_tokens = usage.get("input_tokens", 0) or 0
        completion_tokens = usage.get("output_tokens", 0) or 0
        model = response.get("model", "") or ""
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=usage.get("total_tokens", prompt_tokens + completion_tokens) or 0,
            estimated_cost_usd=self.calculate_cost(model, prompt_tokens, completion_tokens),
            model=model,
        )

    def _init_openai_client(self) -> openai.AsyncOpenAI:
        """
        Initialize the async OpenAI client with settings.

        Returns:
            AsyncOpenAI client instance.

        Raises:
            TransportError: If API key not configured.
        """
        if self.openai_client is not None:
            return self.openai_client

        api_key = self.settings.get_api_key("openai")
        if not api_key:
            raise TransportError(
                "OpenAI API key not configured. Set OPENAI_API_KEY or api_keys.openai in config.json.",
                error_type="ConfigurationError",
                suggestion="Configure an OpenAI API key and restart the server.",
            )

        timeout = float(self.settings.get_agent_setting("request_timeout_seconds", 180))
        max_retries = int(self.settings.get_agent_setting("max_retries", 0))

        self.openai_client = openai.AsyncOpenAI(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
        )
        logger.info(f"OpenAI client initialized (timeout={timeout}s, max_retries={max_retries})")
        return self.openai_client

    async def stream_response(
        self,
        model: str,
        input: List[Dict[str, Any]],
        instructions: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        previous_response_id: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
        reasoning_summary: Optional[str] = None,
        parallel_tool_calls: bool = False,
        tool_choice: str = "auto",
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream one model response.

        Args:
            model: OpenAI model name.
            input: Input items (messages, function calls, function outputs).
            instructions: System instructions for this request.
            tools: Function tool definitions.
            previous_response_id: Continuation token from the last response.
            reasoning_effort: Reasoning effort ("minimal", "low", ...).
            reasoning_summary: Reasoning summary mode ("concise", "detailed").
            parallel_tool_calls: Allow parallel tool calls (off by default).
            tool_choice: Tool choice mode.

        Yields:
            Each stream event as a JSON-compatible dict.

        Raises:
            TransportError: On any SDK failure, at creation or mid-stream.
        """
        client = self._init_openai_client()

        params: Dict[str, Any] = {
            "model": model,
            "input": input,
            "stream": True,
        }
        if instructions:
            params["instructions"] = instructions
        if tools:
            params["tools"] = tools
            params["tool_choice"] = tool_choice
            params["parallel_tool_calls"] = parallel_tool_calls
        if previous_response_id:
            params["previous_response_id"] = previous_response_id
        if reasoning_effort:
            reasoning = {"effort": reasoning_effort}
            if reasoning_summary:
                reasoning["summary"] = reasoning_summary
            params["reasoning"] = reasoning

        logger.info(
            f"OpenAI responses call: model={model}, input_items={len(input)}, "
            f"tools={len(tools) if tools else 0}, continuation={bool(previous_response_id)}"
        )

        stream = None
        try:
            stream = await client.responses.create(**params)
            async for event in stream:
                yield event.model_dump(mode="json", exclude_none=True)
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI request timed out: {e}")
            raise TransportError(f"OpenAI API Error: {e}", error_type=type(e).__name__, is_connection_error=True) from e
        except openai.APIConnectionError as e:
            logger.error(f"OpenAI connection failed: {e}")
            raise TransportError(f"OpenAI API Error: {e}", error_type=type(e).__name__, is_connection_error=True) from e
        except openai.AuthenticationError as e:
            logger.error(f"OpenAI authentication failed: {e}")
            raise TransportError(
                "Invalid OpenAI API key.",
                error_type=type(e).__name__,
                suggestion="Check the configured OpenAI API key.",
            ) from e
        except openai.RateLimitError as e:
            logger.error(f"OpenAI rate limit exceeded: {e}")
            raise TransportError(
                "OpenAI rate limit exceeded. Please try again later.",
                error_type=type(e).__name__,
            ) from e
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise TransportError(f"OpenAI API Error: {e}", error_type=type(e).__name__) from e
        finally:
            if stream is not None:
                await stream.close()


__all__ = [
    "LLMClient",
    "TransportError",
    "TokenUsage",
    "SessionCostTracker",
    "CONNECTION_SUGGESTION",
    "GENERIC_SUGGESTION",
]
