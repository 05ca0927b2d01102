"""
Review Data Models

코드 리뷰 및 리뷰 상태 관련 데이터 모델들
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from pydantic import BaseModel, field_validator, model_validator


@dataclass
class ReviewComment:
    """PR의 인라인 리뷰 코멘트 (GitHub 소유)"""
    id: int
    path: str
    body: str
    author: str
    line: Optional[int] = None
    start_line: Optional[int] = None
    in_reply_to_id: Optional[int] = None
    diff_hunk: Optional[str] = None

    @property
    def has_line_anchor(self) -> bool:
        """단일 라인 또는 멀티 라인 위치가 있는지 확인"""
        return self.line is not None or self.start_line is not None

    @property
    def is_reply(self) -> bool:
        return self.in_reply_to_id is not None


@dataclass
class CommentThread:
    """루트 코멘트와 답글들로 구성된 스레드"""
    file: str
    comments: List[ReviewComment]

    def __post_init__(self):
        """데이터 검증"""
        if not self.comments:
            raise ValueError("Thread must contain at least one comment")
        if self.comments[0].is_reply:
            raise ValueError("Thread root cannot be a reply")

    @property
    def root(self) -> ReviewComment:
        return self.comments[0]

    @property
    def replies(self) -> List[ReviewComment]:
        return self.comments[1:]

    def contains(self, comment_id: int) -> bool:
        return any(c.id == comment_id for c in self.comments)


@dataclass
class ReviewState:
    """리뷰 완료된 커밋 목록 (append-only)"""
    commits: List[str] = field(default_factory=list)

    @property
    def last_commit(self) -> Optional[str]:
        return self.commits[-1] if self.commits else None

    def is_reviewed(self, sha: str) -> bool:
        return sha in self.commits

    def extend(self, shas: List[str]) -> "ReviewState":
        """기존 순서를 유지하고 새 커밋만 뒤에 추가한 상태 반환"""
        commits = list(self.commits)
        for sha in shas:
            if sha not in commits:
                commits.append(sha)
        return ReviewState(commits=commits)


@dataclass(frozen=True)
class PullRequestRef:
    """쓰기 API 호출에 필요한 PR 식별 정보"""
    owner: str
    repo: str
    number: int
    head_sha: str

    def __post_init__(self):
        """데이터 검증"""
        if self.number <= 0:
            raise ValueError("PR number must be positive")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class SubmissionItemResult:
    """개별 코멘트 전송 결과"""
    path: str
    line: Optional[int]
    success: bool
    error: Optional[str] = None


@dataclass
class BulkSubmissionResult:
    """일괄 리뷰 전송 결과"""
    success: bool
    comment_count: int
    review_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class SubmissionReport:
    """리뷰 전송 전체 결과"""
    file_comments: List[SubmissionItemResult] = field(default_factory=list)
    bulk: Optional[BulkSubmissionResult] = None
    fallback: List[SubmissionItemResult] = field(default_factory=list)
    skipped_count: int = 0

    @property
    def used_fallback(self) -> bool:
        return self.bulk is not None and not self.bulk.success

    @property
    def failures(self) -> List[SubmissionItemResult]:
        return [r for r in self.file_comments + self.fallback if not r.success]

    def summary(self) -> Dict[str, int]:
        return {
            'file_comments': len(self.file_comments),
            'inline_comments': self.bulk.comment_count if self.bulk else 0,
            'fallback_attempts': len(self.fallback),
            'failures': len(self.failures),
            'skipped': self.skipped_count,
        }


# Pydantic models for API validation
class InlineCommentRequest(BaseModel):
    """인라인 코멘트 API 요청 모델"""
    path: str
    body: str
    line: int
    side: str = 'RIGHT'
    start_line: Optional[int] = None
    start_side: Optional[str] = None

    @field_validator('side')
    @classmethod
    def validate_side(cls, v):
        if v not in {'RIGHT', 'LEFT'}:
            raise ValueError('Invalid side')
        return v

    @field_validator('line')
    @classmethod
    def validate_line(cls, v):
        if v <= 0:
            raise ValueError('Line number must be positive')
        return v

    @model_validator(mode='after')
    def validate_range(self):
        if self.start_line is not None and self.start_line >= self.line:
            raise ValueError('start_line must be smaller than line')
        return self

    def to_payload(self) -> Dict:
        return self.model_dump(exclude_none=True)
