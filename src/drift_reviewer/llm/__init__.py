"""
LLM Integration

Completion providers and prompt building for the analysis phases.
"""

from ..config import AIConfig
from ..errors import ConfigurationError, ErrorCode
from .anthropic_provider import AnthropicProvider
from .phases import AnalysisPhase
from .prompts import DriftAnalysisPromptData, PromptBuilder, extract_json
from .provider import CompletionProvider


def create_provider(config: AIConfig) -> CompletionProvider:
    """Create the completion provider named by ``config.provider``"""
    if config.provider != "anthropic":
        raise ConfigurationError(f"Unsupported AI provider: {config.provider}")
    if not config.api_key:
        raise ConfigurationError(
            "No Anthropic API key found. Set ANTHROPIC_API_KEY in your environment.",
            code=ErrorCode.MISSING_API_KEY,
        )
    return AnthropicProvider(
        api_key=config.api_key,
        fast_model=config.fast_model,
        advanced_model=config.advanced_model,
        timeout_seconds=config.timeout_seconds,
    )


__all__ = [
    'AnalysisPhase',
    'AnthropicProvider',
    'CompletionProvider',
    'DriftAnalysisPromptData',
    'PromptBuilder',
    'create_provider',
    'extract_json',
]
