"""
Review Submitter

Posts generated comments to a pull request: file-level comments one by
one, line comments as a single review with a per-comment fallback.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..formatting.github import CommentFormatter
from ..formatting.messages import build_review_summary
from ..github.client import GitHubClient
from ..llm.schemas import AIComment
from ..models.pr_diff import FileDiff
from ..models.review import (
    BulkSubmissionResult,
    InlineCommentRequest,
    PullRequestRef,
    SubmissionItemResult,
    SubmissionReport,
)


logger = logging.getLogger(__name__)


class ReviewSubmitter:
    """
    Persists review comments on GitHub.

    Submission is two-phase: ``submit_bulk`` sends every inline comment in
    one review and reports the outcome; only when it fails are the same
    comments sent individually through ``submit_individually``.
    """

    def __init__(
        self,
        client: GitHubClient,
        formatter: Optional[CommentFormatter] = None,
        inline_labels: Iterable[str] = ("typo",),
        server_url: str = "https://github.com",
    ):
        """
        Initialize submitter.

        Args:
            client: GitHub API client
            formatter: Formatter applied to every posted body
            inline_labels: Labels posted inline even when not critical
            server_url: GitHub web URL used for commit links
        """
        self.client = client
        self.formatter = formatter or CommentFormatter()
        self.inline_labels = {label.lower() for label in inline_labels}
        self.server_url = server_url

    def classify(self, comments: List[AIComment]) -> Tuple[List[AIComment], List[AIComment], List[AIComment]]:
        """
        Split comments by how they are posted.

        Returns:
            Tuple of (file_comments, inline_comments, skipped_comments)
        """
        file_comments, inline_comments, skipped = [], [], []
        for comment in comments:
            if comment.is_file_scope:
                file_comments.append(comment)
            elif comment.critical or comment.label in self.inline_labels:
                inline_comments.append(comment)
            else:
                skipped.append(comment)
        return file_comments, inline_comments, skipped

    def _inline_request(self, comment: AIComment) -> InlineCommentRequest:
        multi_line = comment.start_line is not None and comment.start_line < comment.end_line
        return InlineCommentRequest(
            path=comment.file,
            body=self.formatter.build_comment(comment.content),
            line=comment.end_line,
            start_line=comment.start_line if multi_line else None,
            start_side='RIGHT' if multi_line else None,
        )

    def _post_file_comment(self, pull_request: PullRequestRef, comment: AIComment) -> Dict:
        return self.client.create_review_comment(
            pull_request.owner, pull_request.repo, pull_request.number, pull_request.head_sha,
            path=comment.file,
            body=self.formatter.build_comment(comment.content),
            subject_type='file',
        )

    def _post_inline_comment(self, pull_request: PullRequestRef, comment: AIComment) -> Dict:
        return self.client.create_review_comment(
            pull_request.owner, pull_request.repo, pull_request.number, pull_request.head_sha,
            **self._inline_request(comment).to_payload(),
        )

    @staticmethod
    def _collect(comments: List[AIComment], outcomes: List, kind: str) -> List[SubmissionItemResult]:
        results = []
        for comment, outcome in zip(comments, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Error creating {kind} comment on {comment.file}: {outcome}")
                results.append(SubmissionItemResult(comment.file, comment.end_line, False, str(outcome)))
            else:
                results.append(SubmissionItemResult(comment.file, comment.end_line, True))
        return results

    async def submit_file_comments(self, pull_request: PullRequestRef, comments: List[AIComment]) -> List[SubmissionItemResult]:
        """Post file-level comments concurrently; failures are only reported."""
        if not comments:
            return []
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self._post_file_comment, pull_request, c) for c in comments),
            return_exceptions=True,
        )
        return self._collect(comments, outcomes, 'file')

    def submit_bulk(self, pull_request: PullRequestRef, comments: List[AIComment], summary_body: str) -> BulkSubmissionResult:
        """
        Create one review carrying every inline comment and submit it.

        Never raises; a failure is reported in the returned result.
        """
        try:
            payload = [self._inline_request(c).to_payload() for c in comments]
            review = self.client.create_review(
                pull_request.owner, pull_request.repo, pull_request.number,
                pull_request.head_sha, payload,
            )
            self.client.submit_review(
                pull_request.owner, pull_request.repo, pull_request.number,
                review['id'], summary_body, event='COMMENT',
            )
        except Exception as e:
            logger.warning(f"Error submitting review: {e}")
            return BulkSubmissionResult(success=False, comment_count=len(comments), error=str(e))

        logger.info(f"Submitted review {review['id']} with {len(comments)} inline comments")
        return BulkSubmissionResult(success=True, comment_count=len(comments), review_id=review['id'])

    async def submit_individually(self, pull_request: PullRequestRef, comments: List[AIComment]) -> List[SubmissionItemResult]:
        """Post every inline comment on its own, concurrently."""
        if not comments:
            return []
        logger.info(f"Trying to submit {len(comments)} comments one by one")
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self._post_inline_comment, pull_request, c) for c in comments),
            return_exceptions=True,
        )
        return self._collect(comments, outcomes, 'inline')

    async def submit(
        self,
        pull_request: PullRequestRef,
        comments: List[AIComment],
        files: List[FileDiff],
        commits: List[Dict],
    ) -> SubmissionReport:
        """
        Submit all comments of a review run.

        Args:
            pull_request: Target PR
            comments: Filtered model comments
            files: Files reviewed in this run
            commits: Commits reviewed in this run

        Returns:
            SubmissionReport with per-item results
        """
        file_comments, inline_comments, skipped = self.classify(comments)
        report = SubmissionReport(skipped_count=len(skipped))

        report.file_comments = await self.submit_file_comments(pull_request, file_comments)

        summary_body = build_review_summary(
            pull_request, self.server_url, files, commits, inline_comments, skipped
        )
        report.bulk = await asyncio.to_thread(self.submit_bulk, pull_request, inline_comments, summary_body)

        if not report.bulk.success:
            report.fallback = await self.submit_individually(pull_request, inline_comments)

        logger.info(f"Review submission finished: {report.summary()}")
        return report
