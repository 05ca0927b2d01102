"""
LLM Response Schemas

Pydantic models describing what the model is asked to return, plus the
single normalization step applied to raw review responses.
"""

import json
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class AIComment(BaseModel):
    """A review comment generated by the model."""
    model_config = ConfigDict(extra='ignore')

    file: str = Field(description="The full file path of the relevant file")
    start_line: Optional[int] = Field(
        default=None,
        description="Line number (inclusive) from a '__new hunk__' section where the comment starts",
    )
    end_line: Optional[int] = Field(
        default=None,
        description="Line number (inclusive) from a '__new hunk__' section where the comment ends",
    )
    content: str = Field(
        description="Actionable comment on the new code, in markdown. Keep code snippets under 15 lines.",
    )
    header: Optional[str] = Field(default=None, description="Single-sentence overview of the comment")
    highlighted_code: Optional[str] = Field(
        default=None,
        description="Short snippet from a '__new hunk__' the comment refers to, without line numbers",
    )
    label: str = Field(
        default="",
        description="Single label: 'security', 'possible bug', 'bug', 'performance', 'typo', ...",
    )
    critical: bool = Field(
        default=False,
        description="True if the PR should not be merged without addressing the comment",
    )

    @field_validator('start_line', 'end_line', mode='before')
    @classmethod
    def drop_invalid_lines(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            v = int(v)
        except (TypeError, ValueError):
            return None
        return v if v > 0 else None

    @field_validator('label', mode='before')
    @classmethod
    def normalize_label(cls, v):
        return (v or "").strip().lower()

    @property
    def is_file_scope(self) -> bool:
        return self.end_line is None


class CommentsWrapper(BaseModel):
    comments: List[AIComment]


class ReviewMetrics(BaseModel):
    """Overall assessment of the pull request."""
    estimated_effort_to_review: int = Field(ge=1, le=5, description="Estimated effort (1-5) to review")
    score: int = Field(ge=0, le=100, description="PR quality score (0-100)")
    has_relevant_tests: bool = Field(description="True if relevant tests were added or updated")
    security_concerns: str = Field(description="Potential security issues, or 'None identified'")


PLACEHOLDER_METRICS = ReviewMetrics(
    estimated_effort_to_review=3,
    score=50,
    has_relevant_tests=False,
    security_concerns="Unable to determine",
)


class ReviewResponse(BaseModel):
    """Schema given to the model for review generation."""
    review: Optional[ReviewMetrics] = None
    documentation: Optional[str] = Field(
        default=None,
        description="PR documentation in markdown: Summary, Changes, Release Notes, optional Technical Notes",
    )
    comments: Optional[Union[List[AIComment], CommentsWrapper, str]] = Field(
        default=None,
        description="Actionable comments on issues introduced by this PR",
    )


class PullRequestReview(BaseModel):
    """Normalized review result consumed by the orchestrator."""
    review: ReviewMetrics = PLACEHOLDER_METRICS
    comments: List[AIComment] = Field(default_factory=list)
    documentation: Optional[str] = None


class FileSummary(BaseModel):
    filename: str
    summary: str = ""
    title: str = ""


class PullRequestSummary(BaseModel):
    """Schema for the pull request walkthrough."""
    model_config = ConfigDict(extra='ignore')

    title: str = Field(description="Concise PR title following conventional commit style")
    description: str = Field(description="Markdown description of what the PR does and why")
    files: List[FileSummary] = Field(default_factory=list, description="Per-file change summaries")
    type: List[str] = Field(default_factory=list, description="Change types: BUG, TESTS, ENHANCEMENT, ...")


class ReviewCommentReply(BaseModel):
    """Schema for answering a comment in a review thread."""
    action_requested: bool = Field(description="True if the last comment asks the reviewer to act or answer")
    response_comment: str = Field(default="", description="Reply to post in the thread, in markdown")


class CommentsShape(str, Enum):
    """Shapes models use for the ``comments`` field."""
    LIST = "list"
    WRAPPED = "wrapped"
    JSON_STRING = "json_string"
    MISSING = "missing"
    MALFORMED = "malformed"


def classify_comments(value: Any) -> CommentsShape:
    if value is None:
        return CommentsShape.MISSING
    if isinstance(value, list):
        return CommentsShape.LIST
    if isinstance(value, dict) and isinstance(value.get('comments'), list):
        return CommentsShape.WRAPPED
    if isinstance(value, str):
        return CommentsShape.JSON_STRING
    return CommentsShape.MALFORMED


def _parse_comment_items(items: List[Any]) -> Tuple[List[AIComment], int]:
    comments = []
    dropped = 0
    for item in items:
        try:
            comments.append(AIComment.model_validate(item))
        except ValidationError:
            dropped += 1
    return comments, dropped


def normalize_comments(value: Any) -> Tuple[List[AIComment], List[str]]:
    """
    Turn any supported ``comments`` shape into a list of comments.

    Returns:
        Tuple of (comments, warnings)
    """
    warnings = []
    shape = classify_comments(value)

    if shape == CommentsShape.LIST:
        items = value
    elif shape == CommentsShape.WRAPPED:
        items = value['comments']
    elif shape == CommentsShape.JSON_STRING:
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = parsed
        elif isinstance(parsed, dict) and isinstance(parsed.get('comments'), list):
            items = parsed['comments']
        else:
            warnings.append('LLM response had malformed "comments" field; defaulting to empty')
            items = []
    elif shape == CommentsShape.MISSING:
        items = []
    else:
        warnings.append('LLM response had malformed "comments" field; defaulting to empty')
        items = []

    comments, dropped = _parse_comment_items(items)
    if dropped:
        warnings.append(f"Dropped {dropped} comment(s) that did not match the schema")
    return comments, warnings


def normalize_review_response(raw: Any) -> Tuple[PullRequestReview, List[str]]:
    """
    Normalize a raw review response into a ``PullRequestReview``.

    Some models wrap the whole response in a ``parameters`` object; both
    forms are accepted. Missing or invalid parts fall back to placeholders.
    """
    warnings = []
    if not isinstance(raw, dict):
        return PullRequestReview(), ['LLM response is not an object; using placeholder review']

    data = raw.get('parameters') if isinstance(raw.get('parameters'), dict) else raw

    metrics = PLACEHOLDER_METRICS
    if data.get('review') is None:
        warnings.append('LLM response missing "review" field; using placeholder values')
    else:
        try:
            metrics = ReviewMetrics.model_validate(data['review'])
        except ValidationError as e:
            warnings.append(f'LLM response has invalid "review" field ({e.error_count()} errors); using placeholder values')

    comments, comment_warnings = normalize_comments(data.get('comments'))
    warnings.extend(comment_warnings)

    documentation = data.get('documentation')
    if not isinstance(documentation, str) or not documentation.strip():
        documentation = None

    return PullRequestReview(review=metrics, comments=comments, documentation=documentation), warnings
