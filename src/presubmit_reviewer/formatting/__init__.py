"""
Review Formatter

This module provides comment body formatting and the markdown
messages written by the reviewer.
"""

from .github import CommentFormatter, TRUNCATION_MARKER, is_own_comment
from .messages import (
    COMMENT_SIGNATURE,
    OVERVIEW_MESSAGE_SIGNATURE,
    PAYLOAD_TAG_OPEN,
    PAYLOAD_TAG_CLOSE,
)

__all__ = [
    'CommentFormatter',
    'TRUNCATION_MARKER',
    'is_own_comment',
    'COMMENT_SIGNATURE',
    'OVERVIEW_MESSAGE_SIGNATURE',
    'PAYLOAD_TAG_OPEN',
    'PAYLOAD_TAG_CLOSE',
]
