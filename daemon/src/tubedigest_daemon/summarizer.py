"""Transcript-to-digest transformation using an LLM."""

import json
import logging
import re
import time
from typing import Any, Sequence

import litellm
from litellm import completion_cost

from .errors import IncompleteTransformResult, TransformError, TransientError
from .models import ContentUnit
from .observability import log as obs_log

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "title",
    "overview",
    "marketUpdate",
    "technicalCorner",
    "projectSpotlight",
    "keyTakeaway",
    "disclaimer",
)
OPTIONAL_KEYS = ("mentionedTokens",)

FENCE_PATTERN = re.compile(r"^\s*```[A-Za-z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

TRANSIENT_LLM_ERRORS = (
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` wrapper if present."""
    match = FENCE_PATTERN.match(text)
    return match.group(1) if match else text.strip()


def parse_digest(response_text: str) -> dict[str, Any]:
    """Parse and validate an LLM digest response.

    Args:
        response_text: Raw message content, optionally fenced

    Returns:
        Dict with every required section plus any optional ones present

    Raises:
        TransformError: Not JSON, or not a JSON object
        IncompleteTransformResult: Required sections missing
    """
    if not response_text or not response_text.strip():
        raise TransformError("Empty response from LLM")

    try:
        result = json.loads(strip_code_fence(response_text))
    except json.JSONDecodeError as e:
        raise TransformError(f"Failed to parse LLM response as JSON: {e}") from e

    if not isinstance(result, dict):
        raise TransformError(
            f"LLM response is a JSON {type(result).__name__}, expected an object"
        )

    missing = [key for key in REQUIRED_KEYS if key not in result]
    if missing:
        raise IncompleteTransformResult(missing)

    return {key: result[key] for key in REQUIRED_KEYS + OPTIONAL_KEYS if key in result}


class DigestSummarizer:
    """Generate a structured market-analysis digest from a video transcript."""

    def __init__(self, config: dict[str, Any] | None = None):
        """Initialize the summarizer with LLM configuration.

        Args:
            config: Configuration dict with:
                - model: LLM model name (required)
                - api_key: API key for the provider
                - api_base: Endpoint for Ollama/custom providers
                - temperature, max_tokens, timeout: Optional call settings
        """
        self.config = config or {}
        if not self.config or "model" not in self.config:
            raise ValueError("Model must be specified in config")
        self.model = self.config["model"]

        # Store credentials for direct passing to litellm
        self.api_key = self.config.get("api_key")
        self.api_base = self.config.get("api_base")

        provider = self.config.get("provider", "openai").lower()
        if provider == "ollama" and not self.api_base:
            raise ValueError(
                "Ollama provider requires 'api_base' in config (e.g., 'http://localhost:11434')"
            )

        litellm.drop_params = True  # Drop unsupported params (e.g. response_format)
        self.temperature = self.config.get("temperature", 0.3)
        self.max_tokens = self.config.get("max_tokens", 2000)
        self.timeout = self.config.get("timeout", 120.0)

        logger.info(f"DigestSummarizer initialized with model: {self.model}")

    async def summarize(
        self,
        units: Sequence[ContentUnit],
        title: str = "",
        channel_name: str = "",
    ) -> dict[str, Any]:
        """Turn transcript cues into digest sections.

        Args:
            units: Caption cues in temporal order
            title: Video title, for context
            channel_name: Channel name, for context

        Returns:
            Dict with the required digest sections (and mentionedTokens if given)

        Raises:
            TransformError: Empty transcript or unparseable response
            IncompleteTransformResult: Response lacks required sections
            TransientError: Timeout or provider outage
        """
        full_text = " ".join(unit.text for unit in units).strip()
        if not full_text:
            raise TransformError("Cannot summarize an empty transcript")

        kwargs = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self._get_system_prompt()},
                {
                    "role": "user",
                    "content": self._build_prompt(full_text, title, channel_name),
                },
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "response_format": {"type": "json_object"},
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        start_time = time.time()

        try:
            response = await litellm.acompletion(**kwargs)
        except TRANSIENT_LLM_ERRORS as e:
            self._log_call_error(e, start_time)
            raise TransientError(f"LLM call failed: {e}") from e
        except Exception as e:
            self._log_call_error(e, start_time)
            raise TransformError(f"Failed to generate summary: {e}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        usage = getattr(response, "usage", None)
        tokens = {
            "prompt": usage.prompt_tokens if usage else 0,
            "completion": usage.completion_tokens if usage else 0,
            "total": usage.total_tokens if usage else 0,
        }
        try:
            cost_usd = completion_cost(response)
        except Exception:
            cost_usd = 0.0

        obs_log(
            "llm.call",
            action="summarize",
            model=self.model,
            tokens=tokens,
            cost_usd=cost_usd,
            duration_ms=duration_ms,
            status="success",
        )

        response_text = response.choices[0].message.content
        logger.debug(f"Received {len(response_text or ''):,} chars from LLM")

        try:
            return parse_digest(response_text)
        except TransformError as e:
            logger.error(f"Rejected LLM response: {e}")
            raise

    def _log_call_error(self, error: Exception, start_time: float) -> None:
        obs_log(
            "llm.call",
            action="summarize",
            model=self.model,
            status="error",
            error=str(error),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.error(f"LLM summarization failed: {error}")

    def _get_system_prompt(self) -> str:
        """System prompt describing the digest document."""
        return """You are a seasoned cryptocurrency market analyst. Break down the video transcript into a structured analysis.

CRITICAL: You MUST respond with ONLY valid JSON. Start directly with { and end directly with }. No preamble, no code fences.

OUTPUT FORMAT:
{
  "title": "A compelling, descriptive title with relevant emojis capturing the video's main topic",
  "overview": "📝 A 2-3 sentence overview of the main discussion points, arguments and predictions",
  "marketUpdate": "📊 Current market conditions discussed: price movements, sentiment, volume trends, macro correlations, with the statistics mentioned",
  "technicalCorner": "📈 Technical analysis presented: chart patterns, support/resistance levels, indicators, potential breakout or breakdown points",
  "projectSpotlight": "💡 Featured projects: technology, recent developments, partnerships, milestones, risks discussed",
  "keyTakeaway": "🎯 The single most important insight or recommendation and why it matters",
  "disclaimer": "⚠️ This analysis is for informational purposes only and should not be considered financial advice. Always do your own research.",
  "mentionedTokens": ["BTC", "ETH"]
}

RULES:
- Every key except mentionedTokens is REQUIRED. If the video does not cover a section, say so in that section instead of omitting it.
- mentionedTokens lists ticker symbols actually discussed; use [] if none.
- Each value except mentionedTokens is a detailed string. Use \\n for newlines.
- Only use facts from the transcript. Do NOT invent prices, targets or names."""

    def _build_prompt(self, full_text: str, title: str, channel_name: str) -> str:
        """Build the user prompt for the LLM."""
        logger.debug(f"Sending {len(full_text):,} transcript characters to LLM")

        return f"""Analyze this cryptocurrency video transcript and provide a detailed breakdown in JSON format.

Video Title: {title}
Channel: {channel_name}

TRANSCRIPT:
{full_text}"""
