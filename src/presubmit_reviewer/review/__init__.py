"""
Review Engine

This module handles review state tracking, thread reconstruction,
batching and comment submission.
"""

from .batching import BatchPlanner
from .state import (
    OverviewPayloadError,
    ReviewScope,
    ReviewStateTracker,
    decode_review_state,
    encode_review_state,
)
from .submitter import ReviewSubmitter
from .threads import CommentThreadBuilder

__all__ = [
    'BatchPlanner',
    'OverviewPayloadError',
    'ReviewScope',
    'ReviewStateTracker',
    'decode_review_state',
    'encode_review_state',
    'ReviewSubmitter',
    'CommentThreadBuilder',
]
