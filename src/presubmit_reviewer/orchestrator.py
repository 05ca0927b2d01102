"""
Review Orchestrator

Runs a complete review for a pull request event: scope decision, overview
comment, summary, batched review generation and comment submission.
Also answers new comments in review threads.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import AppConfig
from .context import EventContext
from .formatting.github import CommentFormatter, is_own_comment
from .formatting.messages import BOT_MENTIONS, build_loading_message, build_overview_message
from .github.client import GitHubClient
from .github.parser import DiffParser
from .llm.generator import ReviewGenerator
from .llm.prompts import PromptBuilder
from .llm.providers import ProviderRegistry, default_registry
from .llm.schemas import AIComment
from .models.pr_diff import FileDiff
from .models.review import PullRequestRef, ReviewState, SubmissionReport
from .review.batching import BatchPlanner
from .review.state import ReviewStateTracker, encode_review_state
from .review.submitter import ReviewSubmitter
from .review.threads import CommentThreadBuilder


logger = logging.getLogger(__name__)


PULL_REQUEST_EVENTS = {"pull_request", "pull_request_target"}
REVIEW_COMMENT_EVENT = "pull_request_review_comment"

IGNORE_PHRASES = [
    "@presubmit ignore",
    "@presubmit: ignore",
    "@presubmit skip",
    "@presubmit: skip",
    "@presubmitai ignore",
    "@presubmitai: ignore",
    "@presubmitai skip",
    "@presubmitai: skip",
]

SOURCE_CODE_EXTENSIONS = {
    ".py", ".js", ".ts", ".java", ".scala", ".kt", ".cs", ".cpp", ".cc", ".cxx",
    ".go", ".rs", ".rb", ".php", ".swift", ".m", ".mm", ".dart", ".ex", ".exs",
}


def should_ignore_pull_request(description: Optional[str]) -> bool:
    """Check the PR description for an ignore directive."""
    body = (description or "").lower()
    for phrase in IGNORE_PHRASES:
        if phrase in body:
            logger.info(f"Ignoring pull request because of '{phrase}' in description")
            return True
    return False


def should_use_custom_mode(files: List[FileDiff], mode: str = "auto") -> bool:
    """Decide whether a batch gets the focus-area review prompt."""
    mode = (mode or "auto").lower()
    if mode == "on":
        return True
    if mode == "off":
        return False
    return any(f.extension in SOURCE_CODE_EXTENSIONS for f in files)


def missing_pull_request_fields(pull_request: dict, require_base: bool = True) -> List[str]:
    """List the required pull_request payload fields that are absent."""
    missing = []
    if not isinstance(pull_request.get('number'), int) or pull_request['number'] <= 0:
        missing.append('number')
    sides = ['head', 'base'] if require_base else ['head']
    for side in sides:
        if not (pull_request.get(side) or {}).get('sha'):
            missing.append(f'{side}.sha')
    return missing


@dataclass
class ReviewRunResult:
    """Outcome of one handler invocation."""
    status: str
    reason: Optional[str] = None
    commits_reviewed: List[str] = field(default_factory=list)
    files_reviewed: List[str] = field(default_factory=list)
    comments: List[AIComment] = field(default_factory=list)
    batch_count: int = 0
    report: Optional[SubmissionReport] = None
    state: Optional[ReviewState] = None
    overview_comment_id: Optional[int] = None

    @classmethod
    def skipped(cls, reason: str) -> "ReviewRunResult":
        return cls(status="skipped", reason=reason)


class ReviewOrchestrator:
    """
    Composes the review components for each event.

    Blocking GitHub and LLM calls run in worker threads; independent reads
    at the start of a run are fetched concurrently, review batches are
    processed one after another.
    """

    def __init__(
        self,
        config: AppConfig,
        client: GitHubClient,
        generator: Optional[ReviewGenerator] = None,
        registry: Optional[ProviderRegistry] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Validated application config
            client: GitHub API client
            generator: Review generator; built from ``registry`` when omitted
            registry: Provider registry (default: built-in providers)
        """
        self.config = config
        self.client = client

        if generator is None:
            provider = (registry or default_registry()).create(config.llm)
            generator = ReviewGenerator(
                provider,
                PromptBuilder(
                    review_scopes=config.review.review_scopes,
                    style_guide_rules=config.review.style_guide_rules or "",
                    max_summary_chars=config.review.max_review_chars,
                ),
            )
        self.generator = generator

        self.parser = DiffParser()
        self.thread_builder = CommentThreadBuilder(client)
        self.state_tracker = ReviewStateTracker(client)
        self.batch_planner = BatchPlanner(max_chars=config.review.max_review_chars)
        self.formatter = CommentFormatter(max_codeblock_lines=config.review.max_codeblock_lines)
        self.submitter = ReviewSubmitter(
            client,
            formatter=self.formatter,
            inline_labels=config.review.inline_labels,
            server_url=config.github.server_url,
        )

    async def handle_event(self, context: EventContext) -> ReviewRunResult:
        if context.event_name in PULL_REQUEST_EVENTS:
            return await self.handle_pull_request(context)
        if context.event_name == REVIEW_COMMENT_EVENT:
            return await self.handle_pull_request_comment(context)
        logger.warning("Skipped: unsupported github event")
        return ReviewRunResult.skipped("unsupported event")

    async def handle_pull_request(self, context: EventContext) -> ReviewRunResult:
        """
        Review the pull request of a ``pull_request`` event.

        Returns:
            ReviewRunResult; early exits are reported as skipped
        """
        if context.event_name not in PULL_REQUEST_EVENTS:
            logger.warning("Unsupported github event")
            return ReviewRunResult.skipped("unsupported event")

        pull_request = context.pull_request
        if not pull_request:
            logger.warning("`pull_request` is missing from payload")
            return ReviewRunResult.skipped("missing pull_request")

        if should_ignore_pull_request(pull_request.get('body')):
            return ReviewRunResult.skipped("ignore directive")

        missing = missing_pull_request_fields(pull_request)
        if missing:
            logger.warning(f"`pull_request` payload is missing fields: {', '.join(missing)}")
            return ReviewRunResult.skipped("missing pull_request fields")

        pr_ref = PullRequestRef(
            owner=context.owner,
            repo=context.repo,
            number=pull_request['number'],
            head_sha=pull_request['head']['sha'],
        )
        title = pull_request.get('title') or ""
        description = pull_request.get('body') or ""

        commits, issue_comments, raw_files = await asyncio.gather(
            asyncio.to_thread(self.client.list_pull_request_commits, pr_ref.owner, pr_ref.repo, pr_ref.number),
            asyncio.to_thread(self.client.list_issue_comments, pr_ref.owner, pr_ref.repo, pr_ref.number),
            asyncio.to_thread(self.client.list_pull_request_files, pr_ref.owner, pr_ref.repo, pr_ref.number),
        )
        logger.info(f"Fetched {len(commits)} commits, {len(issue_comments)} comments and {len(raw_files)} files")

        # Existing threads give the model context on incremental runs
        threads = []
        if self.state_tracker.find_overview_comment(issue_comments) is not None:
            threads = await asyncio.to_thread(
                self.thread_builder.list_threads, pr_ref.owner, pr_ref.repo, pr_ref.number
            )
        file_diffs = [self.parser.parse_file_diff(f, threads) for f in raw_files]

        scope = await asyncio.to_thread(
            self.state_tracker.decide_scope,
            pr_ref,
            pull_request['base']['sha'],
            commits,
            issue_comments,
            file_diffs,
            self.config.review.force_full_review,
        )
        if not scope.has_new_commits:
            return ReviewRunResult.skipped("no new commits")

        # The previous state stays in the body until this run completes
        previous_payload = encode_review_state(scope.state)
        loading_body = build_loading_message(scope.base_sha, scope.commits, scope.files, previous_payload)
        overview_comment = scope.overview_comment
        if overview_comment is not None:
            await asyncio.to_thread(
                self.client.update_issue_comment, pr_ref.owner, pr_ref.repo, overview_comment['id'], loading_body
            )
            logger.info("Updated existing overview comment")
        else:
            overview_comment = await asyncio.to_thread(
                self.client.create_issue_comment, pr_ref.owner, pr_ref.repo, pr_ref.number, loading_body
            )
            logger.info("Posted new overview loading comment")

        summary = await asyncio.to_thread(
            self.generator.run_summary,
            title,
            description,
            [(c.get('commit') or {}).get('message', '') for c in commits],
            file_diffs,
        )
        logger.info(f"Generated pull request summary: {summary.title}")

        if self.config.review.allow_title_update and any(m in title for m in BOT_MENTIONS):
            logger.info("Title mentions the reviewer, updating it")
            await asyncio.to_thread(
                self.client.update_pull_request, pr_ref.owner, pr_ref.repo, pr_ref.number, title=summary.title
            )

        await asyncio.to_thread(
            self.client.update_issue_comment,
            pr_ref.owner, pr_ref.repo, overview_comment['id'],
            build_overview_message(summary, previous_payload),
        )

        batches = self.batch_planner.plan(scope.files)
        generated: List[AIComment] = []
        documentation = None
        for index, batch in enumerate(batches, 1):
            custom = should_use_custom_mode(batch, self.config.review.custom_mode)
            logger.info(f"Reviewing batch {index}/{len(batches)} ({len(batch)} files)")
            review = await asyncio.to_thread(
                self.generator.run_review, batch, title, description, summary.description, custom
            )
            generated.extend(review.comments)
            if documentation is None and review.documentation:
                documentation = review.documentation.strip()
        logger.info(f"Reviewed pull request in {len(batches)} batch(es)")

        pr_filenames = {f.filename for f in file_diffs}
        comments = [c for c in generated if c.content.strip() and c.file in pr_filenames]
        if len(comments) != len(generated):
            logger.info(f"Dropped {len(generated) - len(comments)} comments without content or outside the PR")

        report = await self.submitter.submit(pr_ref, comments, scope.files, scope.commits)

        new_state = scope.state.extend([c['sha'] for c in commits])
        await asyncio.to_thread(
            self.client.update_issue_comment,
            pr_ref.owner, pr_ref.repo, overview_comment['id'],
            build_overview_message(summary, encode_review_state(new_state), documentation),
        )
        logger.info(f"Recorded {len(new_state.commits)} reviewed commits")

        return ReviewRunResult(
            status="completed",
            commits_reviewed=scope.commit_shas,
            files_reviewed=[f.filename for f in scope.files],
            comments=comments,
            batch_count=len(batches),
            report=report,
            state=new_state,
            overview_comment_id=overview_comment.get('id'),
        )

    async def handle_pull_request_comment(self, context: EventContext) -> ReviewRunResult:
        """Reply to a new comment in a review thread when it asks for something."""
        if context.event_name != REVIEW_COMMENT_EVENT:
            logger.warning("Unsupported github event")
            return ReviewRunResult.skipped("unsupported event")

        comment = context.comment
        if not comment:
            logger.warning("`comment` is missing from payload")
            return ReviewRunResult.skipped("missing comment")
        if context.action != "created":
            logger.warning("Only newly created comments are considered")
            return ReviewRunResult.skipped("not a new comment")

        pull_request = context.pull_request
        if not pull_request:
            logger.warning("`pull_request` is missing from payload")
            return ReviewRunResult.skipped("missing pull_request")
        if is_own_comment(comment.get('body')):
            logger.info("Ignoring own comment")
            return ReviewRunResult.skipped("own comment")

        missing = missing_pull_request_fields(pull_request, require_base=False)
        if comment.get('id') is None:
            missing.append('comment.id')
        if missing:
            logger.warning(f"Payload is missing fields: {', '.join(missing)}")
            return ReviewRunResult.skipped("missing pull_request fields")

        pr_ref = PullRequestRef(
            owner=context.owner,
            repo=context.repo,
            number=pull_request['number'],
            head_sha=pull_request['head']['sha'],
        )

        thread = await asyncio.to_thread(
            self.thread_builder.get_comment_thread, pr_ref.owner, pr_ref.repo, pr_ref.number, comment['id']
        )
        if thread is None:
            logger.warning("Comment thread not found")
            return ReviewRunResult.skipped("thread not found")

        raw_files = await asyncio.to_thread(
            self.client.list_pull_request_files, pr_ref.owner, pr_ref.repo, pr_ref.number
        )
        file_diff = next(
            (self.parser.parse_file_diff(f) for f in raw_files if f['filename'] == thread.file),
            None,
        )
        if file_diff is None:
            logger.warning("Comment is not in any file changed in this PR")
            return ReviewRunResult.skipped("file not in pull request")

        reply = await asyncio.to_thread(self.generator.run_review_comment, thread, file_diff)
        if not (reply.action_requested and reply.response_comment.strip()):
            logger.info("Comment does not require any action, not responding")
            return ReviewRunResult(status="completed", reason="no action requested")

        logger.info("Action requested, submitting response")
        await asyncio.to_thread(
            self.client.create_review_comment,
            pr_ref.owner, pr_ref.repo, pr_ref.number, pr_ref.head_sha,
            path=thread.file,
            body=self.formatter.build_comment(reply.response_comment),
            in_reply_to=thread.root.id,
        )
        return ReviewRunResult(status="completed", reason="replied")
