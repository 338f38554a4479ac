"""Analysis module - static compatibility checks of handler source."""

from .static_analyzer import AnalysisResult, StaticAnalyzer, extract_modules

__all__ = ["AnalysisResult", "StaticAnalyzer", "extract_modules"]
