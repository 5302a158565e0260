"""
Dependency Analysis

Heuristic import/call/inheritance/type-reference detection between AiItems.
"""

from .dependency_analyzer import DependencyAnalyzer

__all__ = ['DependencyAnalyzer']
