"""
PR Diff Data Models

Pull Request diff 관련 데이터 모델들
"""

from dataclasses import dataclass, field
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .review import CommentThread


LINE_KINDS = {'context', 'added', 'removed'}


@dataclass(frozen=True)
class DiffLine:
    """hunk 안의 한 줄과 해당 라인 번호"""
    kind: str  # 'context', 'added', 'removed'
    content: str
    old_line: Optional[int] = None
    new_line: Optional[int] = None

    def __post_init__(self):
        """데이터 검증"""
        if self.kind not in LINE_KINDS:
            raise ValueError(f"Invalid line kind: {self.kind}")

    @property
    def prefix(self) -> str:
        return {'context': ' ', 'added': '+', 'removed': '-'}[self.kind]


@dataclass(frozen=True)
class Hunk:
    """unified diff의 개별 hunk"""
    start_line: int
    end_line: int
    diff: str
    old_start: int = 0
    old_lines: int = 0
    new_start: int = 0
    new_lines: int = 0
    lines: List[DiffLine] = field(default_factory=list)

    def __post_init__(self):
        """데이터 검증"""
        if self.start_line < 0 or self.end_line < 0:
            raise ValueError("Line numbers must be non-negative")
        if self.end_line < self.start_line:
            raise ValueError("end_line cannot be smaller than start_line")
        if self.old_lines < 0 or self.new_lines < 0:
            raise ValueError("Line counts must be non-negative")

    @property
    def added_lines(self) -> List[DiffLine]:
        return [line for line in self.lines if line.kind == 'added']

    @property
    def removed_lines(self) -> List[DiffLine]:
        return [line for line in self.lines if line.kind == 'removed']

    def contains_line(self, line: int) -> bool:
        """새 파일 기준 라인 번호가 hunk 범위 안에 있는지 확인"""
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True)
class FileDiff:
    """리뷰 대상 파일의 변경사항"""
    filename: str
    status: str  # 'added', 'modified', 'removed', 'renamed', ...
    hunks: List[Hunk] = field(default_factory=list)
    previous_filename: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    comment_threads: List["CommentThread"] = field(default_factory=list)

    def __post_init__(self):
        """데이터 검증"""
        if not self.filename:
            raise ValueError("Filename cannot be empty")
        if self.additions < 0 or self.deletions < 0:
            raise ValueError("Addition and deletion counts must be non-negative")

    @property
    def extension(self) -> Optional[str]:
        """파일 확장자 반환 (점 포함, 소문자)"""
        name = self.filename.rsplit('/', 1)[-1]
        if '.' not in name:
            return None
        return '.' + name.rsplit('.', 1)[-1].lower()

    @property
    def diff_size(self) -> int:
        """hunk diff 문자 수 합계"""
        return sum(len(hunk.diff) for hunk in self.hunks)
