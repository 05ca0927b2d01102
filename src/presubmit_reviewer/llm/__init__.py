"""
LLM Review Generation

This module handles prompt building, provider calls and normalization of
model output.
"""

from .generator import ReviewGenerator
from .prompts import PromptBuilder
from .providers import (
    LLMProvider,
    LLMProviderError,
    LLMResponseError,
    OpenAICompatibleProvider,
    ProviderRegistry,
    UnknownModelError,
    default_registry,
)
from .schemas import AIComment, PullRequestReview, PullRequestSummary, ReviewCommentReply

__all__ = [
    'ReviewGenerator',
    'PromptBuilder',
    'LLMProvider',
    'LLMProviderError',
    'LLMResponseError',
    'OpenAICompatibleProvider',
    'ProviderRegistry',
    'UnknownModelError',
    'default_registry',
    'AIComment',
    'PullRequestReview',
    'PullRequestSummary',
    'ReviewCommentReply',
]
