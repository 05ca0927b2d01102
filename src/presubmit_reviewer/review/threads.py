"""
Comment Thread Builder

Rebuilds threaded review conversations from the flat, paginated list of
review comments returned by GitHub.
"""

import logging
from typing import Dict, List, Optional

from ..formatting.github import is_own_comment
from ..formatting.messages import BOT_HANDLE, BOT_MENTIONS
from ..github.client import GitHubClient
from ..models.review import CommentThread, ReviewComment


logger = logging.getLogger(__name__)


def _as_int(value) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


class CommentThreadBuilder:
    """
    Fetches review comments and groups them into threads.

    A thread root has no parent, a non-empty body and a line anchor
    (``line`` or ``start_line``); its replies are the comments whose parent
    id is the root id, in fetch order.
    """

    def __init__(self, client: GitHubClient, per_page: int = 100, bot_handle: str = BOT_HANDLE):
        self.client = client
        self.per_page = per_page
        self.bot_handle = bot_handle

    def fetch_review_comments(self, owner: str, repo: str, pr_number: int) -> List[ReviewComment]:
        """
        Fetch every review comment on a pull request.

        Pages are requested from 1 upwards until a page holds fewer than
        ``per_page`` items or is not a list.
        """
        comments = []
        page = 1

        while True:
            data = self.client.list_review_comments(
                owner, repo, pr_number, page=page, per_page=self.per_page
            )
            if not isinstance(data, list):
                logger.warning(f"Unexpected review comments page {page} for {owner}/{repo}#{pr_number}")
                break

            comments.extend(self._to_comment(item) for item in data)

            if len(data) < self.per_page:
                break
            page += 1

        logger.debug(f"Fetched {len(comments)} review comments over {page} page(s)")
        return comments

    def _to_comment(self, data: Dict) -> ReviewComment:
        body = data.get('body') or ""
        author = self.bot_handle if is_own_comment(body) else ((data.get('user') or {}).get('login') or "")

        return ReviewComment(
            id=data['id'],
            path=data.get('path', ''),
            body=body,
            author=author,
            line=_as_int(data.get('line')),
            start_line=_as_int(data.get('start_line')),
            in_reply_to_id=_as_int(data.get('in_reply_to_id')),
            diff_hunk=data.get('diff_hunk'),
        )

    @staticmethod
    def build_threads(comments: List[ReviewComment]) -> List[CommentThread]:
        """Group a flat comment list into threads."""
        replies: Dict[int, List[ReviewComment]] = {}
        for comment in comments:
            if comment.is_reply:
                replies.setdefault(comment.in_reply_to_id, []).append(comment)

        threads = []
        for comment in comments:
            if comment.is_reply or not comment.body or not comment.has_line_anchor:
                continue
            threads.append(CommentThread(
                file=comment.path,
                comments=[comment] + replies.get(comment.id, []),
            ))

        return threads

    def list_threads(self, owner: str, repo: str, pr_number: int) -> List[CommentThread]:
        return self.build_threads(self.fetch_review_comments(owner, repo, pr_number))

    def get_comment_thread(self, owner: str, repo: str, pr_number: int, comment_id: int) -> Optional[CommentThread]:
        """Find the thread containing a comment, or None."""
        for thread in self.list_threads(owner, repo, pr_number):
            if thread.contains(comment_id):
                return thread
        return None

    @staticmethod
    def is_thread_relevant(thread: CommentThread) -> bool:
        """True when the reviewer wrote or was mentioned in the thread."""
        return any(
            is_own_comment(c.body) or any(mention in c.body for mention in BOT_MENTIONS)
            for c in thread.comments
        )
