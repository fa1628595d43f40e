"""
Anthropic completion provider
"""

import logging
from typing import Optional

import anthropic

from ..errors import ApiError, ErrorCode, ProviderError
from ..utils.retry import RetryConfig
from .phases import AnalysisPhase
from .provider import CompletionProvider


logger = logging.getLogger(__name__)


class AnthropicProvider(CompletionProvider):
    """
    Completion provider backed by the Anthropic Messages API.

    Args:
        api_key: Anthropic API key
        fast_model: Model for the cheaper phases
        advanced_model: Model for drift analysis
        timeout_seconds: Per-request timeout
        client: Preconfigured ``anthropic.AsyncAnthropic`` (tests)
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str],
        fast_model: str,
        advanced_model: str,
        timeout_seconds: float = 120.0,
        retry_config: Optional[RetryConfig] = None,
        client=None,
    ):
        if client is None and not api_key:
            raise ProviderError(
                "An Anthropic API key is needed",
                code=ErrorCode.MISSING_API_KEY,
            )
        super().__init__(fast_model, advanced_model, retry_config)
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_seconds)

    async def call_model(self, model: str, prompt: str, phase: AnalysisPhase, max_tokens: int) -> str:
        context = {"model": model, "phase": phase.value}
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise ApiError(f"Anthropic API error: {e}", status_code=e.status_code, context=context)
        except anthropic.APITimeoutError as e:
            raise ApiError(f"Anthropic request timeout: {e}", status_code=408, context=context)
        except anthropic.APIConnectionError as e:
            raise ApiError(
                f"Could not reach the Anthropic API: {e}",
                code=ErrorCode.NETWORK_ERROR,
                context=context,
            )

        if response.stop_reason == "refusal":
            raise ProviderError(
                "Anthropic safety filters blocked the response",
                code=ErrorCode.SAFETY_FILTERED,
                context=context,
            )

        text = "".join(
            getattr(block, "text", "") for block in response.content or []
            if getattr(block, "type", None) == "text"
        )
        if not text:
            raise ProviderError("Anthropic returned an empty response", context=context)

        if response.stop_reason == "max_tokens":
            raise ProviderError(
                "Anthropic response was cut short (max_tokens reached)",
                context={**context, "max_tokens": max_tokens},
            )

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"{phase.value} call to {model}: {getattr(usage, 'input_tokens', 0)} in, "
                f"{getattr(usage, 'output_tokens', 0)} out"
            )
        return text
