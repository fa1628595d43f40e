"""
Drift Reviewer

Detects drift between pull request changes and the declared architecture
model, and proposes model updates.
"""

__version__ = "1.0.0"

from .api import AnalyzeRequest, AnalyzeResult, ComponentConnections, DriftReviewerAPI, ModelValidationResult

__all__ = ["DriftReviewerAPI", "AnalyzeRequest", "AnalyzeResult", "ModelValidationResult", "ComponentConnections"]
