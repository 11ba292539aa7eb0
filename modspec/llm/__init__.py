"""Local LLM runner adapters."""

from .content import LLMContentGenerator, RetryPolicy
from .runner import LLMRunner

__all__ = ["LLMContentGenerator", "LLMRunner", "RetryPolicy"]
