"""
Review State Tracking

Persists which commits have been reviewed inside the overview comment and
decides whether a run is a full or an incremental review.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError

from ..formatting.messages import OVERVIEW_MESSAGE_SIGNATURE, PAYLOAD_TAG_CLOSE, PAYLOAD_TAG_OPEN
from ..github.client import GitHubClient
from ..models.pr_diff import FileDiff
from ..models.review import PullRequestRef, ReviewState


logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1


class OverviewPayloadError(ValueError):
    """Overview comment payload is missing or cannot be decoded"""


class OverviewPayload(BaseModel):
    """Serialized review state"""
    version: int = PAYLOAD_VERSION
    commits: List[str] = []


def encode_review_state(state: ReviewState) -> str:
    """Serialize review state into the tagged payload section."""
    payload = OverviewPayload(commits=list(state.commits))
    return f"{PAYLOAD_TAG_OPEN}{payload.model_dump_json()}{PAYLOAD_TAG_CLOSE}"


def decode_review_state(body: str) -> ReviewState:
    """
    Recover review state from an overview comment body.

    Raises:
        OverviewPayloadError: If the tags are missing or the payload is invalid
    """
    body = body or ""
    start = body.find(PAYLOAD_TAG_OPEN)
    if start < 0:
        raise OverviewPayloadError("payload tag not found")
    start += len(PAYLOAD_TAG_OPEN)

    end = body.find(PAYLOAD_TAG_CLOSE, start)
    if end < 0:
        raise OverviewPayloadError("payload closing tag not found")

    try:
        payload = OverviewPayload.model_validate(json.loads(body[start:end]))
    except (json.JSONDecodeError, ValidationError) as e:
        raise OverviewPayloadError(f"invalid payload: {e}")

    if payload.version > PAYLOAD_VERSION:
        logger.warning(f"Overview payload version {payload.version} is newer than {PAYLOAD_VERSION}")

    return ReviewState(commits=payload.commits)


@dataclass
class ReviewScope:
    """Commits and files selected for one review run."""
    incremental: bool
    base_sha: str
    state: ReviewState
    commits: List[Dict] = field(default_factory=list)
    files: List[FileDiff] = field(default_factory=list)
    overview_comment: Optional[Dict] = None

    @property
    def has_new_commits(self) -> bool:
        return bool(self.commits)

    @property
    def commit_shas(self) -> List[str]:
        return [c['sha'] for c in self.commits]


class ReviewStateTracker:
    """
    Decides the scope of a review run.

    Without an overview comment every PR commit and file is in scope. With
    one, commits already recorded in its payload are skipped and files are
    limited to those changed since the last reviewed commit.
    """

    def __init__(self, client: GitHubClient):
        self.client = client

    @staticmethod
    def find_overview_comment(issue_comments: List[Dict]) -> Optional[Dict]:
        for comment in issue_comments:
            if OVERVIEW_MESSAGE_SIGNATURE in (comment.get('body') or ''):
                return comment
        return None

    def load_state(self, overview_comment: Optional[Dict]) -> ReviewState:
        """Read prior state; an unreadable payload counts as nothing reviewed."""
        if overview_comment is None:
            return ReviewState()
        try:
            return decode_review_state(overview_comment.get('body') or '')
        except OverviewPayloadError as e:
            logger.warning(f"Error parsing overview payload, running full review: {e}")
            return ReviewState()

    def decide_scope(
        self,
        pull_request: PullRequestRef,
        base_sha: str,
        commits: List[Dict],
        issue_comments: List[Dict],
        files: List[FileDiff],
        force_full: bool = False,
    ) -> ReviewScope:
        """
        Compute the review scope for the current PR head.

        Args:
            pull_request: PR being reviewed
            base_sha: PR base commit
            commits: PR commits, oldest first
            issue_comments: Top-level PR comments
            files: Parsed diffs of every changed file
            force_full: Ignore prior state for scoping (state is still kept)

        Returns:
            ReviewScope; ``commits`` is empty when there is nothing new
        """
        overview_comment = self.find_overview_comment(issue_comments)
        state = self.load_state(overview_comment)

        if force_full or not state.commits:
            if force_full:
                logger.info("Running full review (forced)")
            else:
                logger.info("Running full review")
            return ReviewScope(
                incremental=False,
                base_sha=base_sha,
                state=state,
                commits=list(commits),
                files=list(files),
                overview_comment=overview_comment,
            )

        logger.info("Running incremental review")
        last_reviewed = state.last_commit
        files_in_scope = list(files)

        if last_reviewed != pull_request.head_sha:
            comparison = self.client.compare_commits(
                pull_request.owner, pull_request.repo, last_reviewed, pull_request.head_sha
            )
            changed = comparison.get('files')
            if changed is not None:
                changed_names = {f['filename'] for f in changed}
                files_in_scope = [f for f in files if f.filename in changed_names]

        new_commits = [c for c in commits if not state.is_reviewed(c['sha'])]
        if not new_commits:
            logger.info("No new commits to review")

        return ReviewScope(
            incremental=True,
            base_sha=last_reviewed,
            state=state,
            commits=new_commits,
            files=files_in_scope,
            overview_comment=overview_comment,
        )
