"""Core engine infrastructure.

This package defines the setup side of a run:

- the step registry, with step definitions, parameter types and hooks
  registered directly or contributed by step libraries;
- the default matcher for Cucumber Expressions and regular expressions;
- snippets and suggestions for undefined steps;
- expansion of feature trees into concrete scenarios;
- loading of feature trees from YAML sources.
"""

from .matcher import CompiledPattern, ExpressionMatcher, Matcher
from .outline import expand_feature, expand_features
from .registry import NO_MATCH, Match, NoMatch, StepRegistry
from .snippets import make_snippet, suggest
from .sources import DocumentLoader, FeatureParser

__all__ = (
    'NO_MATCH',
    'CompiledPattern',
    'DocumentLoader',
    'ExpressionMatcher',
    'FeatureParser',
    'Match',
    'Matcher',
    'NoMatch',
    'StepRegistry',
    'expand_feature',
    'expand_features',
    'make_snippet',
    'suggest',
)
