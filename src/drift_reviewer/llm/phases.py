"""
Analysis phases in which a completion model is called
"""

from enum import Enum


class AnalysisPhase(str, Enum):
    COMPONENT_RESOLUTION = "component-resolution"
    DEPENDENCY_SCAN = "dependency-scan"
    CHANGE_ANALYSIS = "change-analysis"
    MODEL_PATCHING = "model-patching"
