"""
Data Models

Presubmit Reviewer 시스템의 핵심 데이터 모델들
"""

from .pr_diff import DiffLine, Hunk, FileDiff
from .review import (
    ReviewComment,
    CommentThread,
    ReviewState,
    PullRequestRef,
    InlineCommentRequest,
    SubmissionItemResult,
    BulkSubmissionResult,
    SubmissionReport,
)

__all__ = [
    "DiffLine",
    "Hunk",
    "FileDiff",
    "ReviewComment",
    "CommentThread",
    "ReviewState",
    "PullRequestRef",
    "InlineCommentRequest",
    "SubmissionItemResult",
    "BulkSubmissionResult",
    "SubmissionReport",
]
