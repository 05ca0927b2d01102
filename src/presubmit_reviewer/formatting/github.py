"""
GitHub Comment Formatter

Prepares comment bodies posted by the reviewer: appends the reviewer
signature and truncates oversized fenced code blocks.
"""

import logging
from typing import List

from .messages import COMMENT_SIGNATURE


logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... (truncated; more lines omitted) ..."


def is_own_comment(body: str) -> bool:
    """Check whether a comment body was written by the reviewer."""
    return COMMENT_SIGNATURE in (body or "")


class CommentFormatter:
    """
    Formats comment bodies for GitHub.

    Every body passed through ``build_comment`` ends with the reviewer
    signature. Fenced code blocks longer than ``max_codeblock_lines`` keep
    their first lines, followed by a single truncation marker; text outside
    fences is left as-is.
    """

    def __init__(self, max_codeblock_lines: int = 60, signature: str = COMMENT_SIGNATURE):
        """
        Initialize comment formatter.

        Args:
            max_codeblock_lines: Maximum lines kept inside one fenced block
            signature: Marker appended to every comment
        """
        if max_codeblock_lines <= 0:
            raise ValueError("max_codeblock_lines must be positive")
        self.max_codeblock_lines = max_codeblock_lines
        self.signature = signature

    def build_comment(self, content: str) -> str:
        """
        Build final comment body.

        The signature is appended unconditionally, so formatting an already
        signed body signs it twice.

        Args:
            content: Raw comment markdown

        Returns:
            Comment body ready to post
        """
        body = "\n".join(self.truncate_code_blocks(content or ""))
        return body + "\n\n" + self.signature

    def truncate_code_blocks(self, content: str) -> List[str]:
        """Return content lines with long fenced blocks cut down."""
        out = []
        in_block = False
        truncated = False
        count = 0

        for line in content.split("\n"):
            if line.strip().startswith("```"):
                # opening and closing fences are always kept
                out.append(line)
                in_block = not in_block
                truncated = False
                count = 0
                continue

            if not in_block:
                out.append(line)
            elif count < self.max_codeblock_lines:
                out.append(line)
                count += 1
            elif not truncated:
                out.append(TRUNCATION_MARKER)
                truncated = True
                logger.debug(f"Truncated code block after {count} lines")

        return out
