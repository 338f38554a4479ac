"""Compat module - LLRT compatibility matrix and its builder."""

from .matrix import CompatibilityMatrix, FeatureSupport, load_matrix

__all__ = ["CompatibilityMatrix", "FeatureSupport", "load_matrix"]
