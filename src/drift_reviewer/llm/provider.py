"""
Completion Provider

Shared logic for every completion service: prompt building, retry,
JSON extraction and response validation. Subclasses implement only the
service call itself.
"""

import json
import logging
import re
from typing import List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ApiError, ProviderError
from ..models.analysis import (
    DependencyExtractionResponse,
    DependencyExtractionResult,
    DriftAnalysisResponse,
    DriftAnalysisResult,
)
from ..models.architecture import ArchitecturalComponent
from ..models.change_request import ChangeRequestFile, ChangeRequestRef, Commit
from ..utils.retry import RetryConfig, with_retry
from .phases import AnalysisPhase
from .prompts import DriftAnalysisPromptData, PromptBuilder, extract_json


logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)

_CODE_FENCE = re.compile(r"^```[\w-]*\s*\n(.*?)\n?```\s*$", re.DOTALL)

COMPONENT_SELECTION_MAX_TOKENS = 256
DEPENDENCY_SCAN_MAX_TOKENS = 4096
CHANGE_ANALYSIS_MAX_TOKENS = 8192
MODEL_PATCH_MAX_TOKENS = 8192


def is_retryable_error(error: BaseException) -> bool:
    """Only rate limiting and timeouts from the service are worth retrying"""
    return isinstance(error, ApiError) and (error.is_rate_limited or error.is_timeout)


def strip_code_fences(text: str) -> str:
    text = text.strip()
    match = _CODE_FENCE.match(text)
    return match.group(1) if match else text


class CompletionProvider:
    """
    Base class for completion services.

    Args:
        fast_model: Model used for component selection, dependency scan and patching
        advanced_model: Model used for drift analysis
        retry_config: Retry policy applied to every call
    """

    name = "base"

    def __init__(self, fast_model: str, advanced_model: str, retry_config: Optional[RetryConfig] = None):
        self.fast_model = fast_model
        self.advanced_model = advanced_model
        self.retry_config = retry_config or RetryConfig()
        self.prompt_builder = PromptBuilder()

    async def call_model(self, model: str, prompt: str, phase: AnalysisPhase, max_tokens: int) -> str:
        """
        Make a single completion call.

        Raises:
            ApiError: Transport or service failure (rate limit and timeout are recoverable)
            ProviderError: Safety filter, truncated or empty output
        """
        raise NotImplementedError

    async def _call_with_retry(self, model: str, prompt: str, phase: AnalysisPhase, max_tokens: int) -> str:
        return await with_retry(
            lambda: self.call_model(model, prompt, phase, max_tokens),
            config=self.retry_config,
            should_retry=is_retryable_error,
            description=f"{self.name} {phase.value} call",
        )

    async def _execute_stage(
        self,
        phase: AnalysisPhase,
        model: str,
        prompt: str,
        response_model: Type[ResponseModel],
        max_tokens: int,
    ) -> ResponseModel:
        response_text = await self._call_with_retry(model, prompt, phase, max_tokens)

        json_str = extract_json(response_text)
        if not json_str:
            raise ProviderError(
                "Response contained no parseable JSON",
                context={"phase": phase.value},
            )

        try:
            return response_model(**json.loads(json_str))
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Response JSON could not be decoded: {e}",
                context={"phase": phase.value},
            )
        except ValidationError as e:
            raise ProviderError(
                f"{response_model.__name__} validation failed: {e}",
                context={"phase": phase.value},
            )

    async def select_component(
        self,
        candidates: Sequence[ArchitecturalComponent],
        files: Sequence[ChangeRequestFile],
    ) -> Optional[str]:
        """
        Return the id of the candidate named in the response, or None.

        An answer that is exactly one id wins; otherwise the longest id found
        in the text is used, so a child id is not mistaken for its parent.
        """
        prompt = self.prompt_builder.build_component_selection_prompt(candidates, files)
        response_text = await self._call_with_retry(
            self.fast_model, prompt, AnalysisPhase.COMPONENT_RESOLUTION, COMPONENT_SELECTION_MAX_TOKENS
        )
        if not response_text:
            return None
        answer = response_text.strip().strip("`\"'.")
        ids = [candidate.id for candidate in candidates]
        if answer in ids:
            return answer

        mentioned = [component_id for component_id in ids if component_id in response_text]
        if not mentioned:
            return None
        return max(mentioned, key=len)

    async def extract_dependencies(
        self,
        diff: str,
        commit: Commit,
        ref: ChangeRequestRef,
        component: ArchitecturalComponent,
    ) -> DependencyExtractionResult:
        prompt = self.prompt_builder.build_dependency_extraction_prompt(diff, commit, ref, [component])
        response = await self._execute_stage(
            AnalysisPhase.DEPENDENCY_SCAN,
            self.fast_model,
            prompt,
            DependencyExtractionResponse,
            DEPENDENCY_SCAN_MAX_TOKENS,
        )
        return response.to_result()

    async def analyze_drift(self, data: DriftAnalysisPromptData) -> DriftAnalysisResult:
        prompt = self.prompt_builder.build_drift_analysis_prompt(data)
        response = await self._execute_stage(
            AnalysisPhase.CHANGE_ANALYSIS,
            self.advanced_model,
            prompt,
            DriftAnalysisResponse,
            CHANGE_ANALYSIS_MAX_TOKENS,
        )
        return DriftAnalysisResult(
            has_violations=response.has_violations,
            violations=response.to_violations(),
            summary=response.summary,
            metadata=data.change_request,
            component=data.component,
            dependency_changes=data.dependency_changes,
            improvements=list(response.improvements),
            warnings=list(response.warnings),
            model_updates=response.to_model_updates(),
        )

    async def patch_model(self, content: str, new_lines: List[str], format_id: str) -> Optional[str]:
        """Ask the fast model to rewrite ``content`` with ``new_lines`` inserted"""
        prompt = self.prompt_builder.build_model_patch_prompt(content, new_lines, format_id)
        response_text = await self._call_with_retry(
            self.fast_model, prompt, AnalysisPhase.MODEL_PATCHING, MODEL_PATCH_MAX_TOKENS
        )
        if not response_text or not response_text.strip():
            return None
        return strip_code_fences(response_text)
