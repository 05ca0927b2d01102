"""
Review Generator

Runs summary, review and thread-reply prompts through an LLM provider and
normalizes what comes back.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from ..models.pr_diff import FileDiff
from ..models.review import CommentThread
from .prompts import PromptBuilder
from .providers import LLMProvider, LLMResponseError
from .schemas import (
    PullRequestReview,
    PullRequestSummary,
    ReviewCommentReply,
    ReviewResponse,
    normalize_review_response,
)


logger = logging.getLogger(__name__)


class ReviewGenerator:
    """
    Generates PR summaries and reviews using an LLM provider.

    Provider errors other than malformed output propagate to the caller;
    malformed review output degrades to placeholder values with a warning.
    """

    def __init__(self, provider: LLMProvider, prompt_builder: Optional[PromptBuilder] = None):
        self.provider = provider
        self.prompt_builder = prompt_builder or PromptBuilder()

    def run_summary(
        self,
        pr_title: str,
        pr_description: str,
        commit_messages: List[str],
        files: List[FileDiff],
    ) -> PullRequestSummary:
        """
        Summarize the pull request.

        Returns:
            PullRequestSummary; the current title and description are reused
            when the model output cannot be validated
        """
        system_prompt, prompt = self.prompt_builder.build_summary_prompt(
            pr_title, pr_description, commit_messages, files
        )
        logger.info(f"Generating PR summary for {len(files)} files")

        try:
            raw = self.provider.run_prompt(prompt, system_prompt, PullRequestSummary)
            return PullRequestSummary.model_validate(raw)
        except (ValidationError, LLMResponseError) as e:
            logger.warning(f"LLM summary response was invalid; using PR description: {e}")
            return PullRequestSummary(title=pr_title, description=pr_description or "")

    def run_review(
        self,
        files: List[FileDiff],
        pr_title: str,
        pr_description: str,
        pr_summary: str,
        custom: bool = False,
    ) -> PullRequestReview:
        """
        Review one batch of files.

        Args:
            files: File diffs in the batch
            pr_title: Current PR title
            pr_description: Current PR body
            pr_summary: Summary produced earlier in the run
            custom: Use the focus-area prompt

        Returns:
            Normalized PullRequestReview
        """
        system_prompt, prompt = self.prompt_builder.build_review_prompt(
            pr_title, pr_description, pr_summary, files, custom=custom
        )
        logger.info(
            f"Reviewing batch of {len(files)} files "
            f"({'custom' if custom else 'core'} prompt, {len(prompt)} chars)"
        )

        try:
            raw = self.provider.run_prompt(prompt, system_prompt, ReviewResponse)
        except LLMResponseError as e:
            logger.warning(f"LLM review response was not usable: {e}")
            raw = None

        review, warnings = normalize_review_response(raw)
        for message in warnings:
            logger.warning(message)

        logger.info(f"Model returned {len(review.comments)} comments")
        return review

    def run_review_comment(self, thread: CommentThread, file_diff: FileDiff) -> ReviewCommentReply:
        """Decide whether a review thread needs a reply and draft it."""
        system_prompt, prompt = self.prompt_builder.build_review_comment_prompt(thread, file_diff)

        try:
            raw = self.provider.run_prompt(prompt, system_prompt, ReviewCommentReply)
            return ReviewCommentReply.model_validate(raw)
        except (ValidationError, LLMResponseError) as e:
            logger.warning(f"LLM reply response was invalid; not replying: {e}")
            return ReviewCommentReply(action_requested=False, response_comment="")
