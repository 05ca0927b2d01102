"""
GitHub Integration Layer

This module provides GitHub API access and diff parsing for
pull request review.
"""

from .client import (
    GitHubClient,
    GitHubAPIError,
    RateLimitExceeded,
    SecondaryRateLimitExceeded,
    RateLimitPolicy,
)
from .parser import DiffParser, generate_file_code_diff

__all__ = [
    'GitHubClient',
    'GitHubAPIError',
    'RateLimitExceeded',
    'SecondaryRateLimitExceeded',
    'RateLimitPolicy',
    'DiffParser',
    'generate_file_code_diff',
]
