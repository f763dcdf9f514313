"""Service layer orchestrations for docsift."""

from .generation import GenerationBackend, GenerationConfig, GenerationTimeout, TemplateGenerator
from .query import PromptBuilder, PromptBuilderConfig, QueryService

__all__ = [
    "GenerationBackend",
    "GenerationConfig",
    "GenerationTimeout",
    "TemplateGenerator",
    "PromptBuilder",
    "PromptBuilderConfig",
    "QueryService",
]
