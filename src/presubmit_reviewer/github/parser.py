"""
Diff Parser

Parses GitHub file patches into hunks with resolved line numbers and
renders the annotated form used in review prompts.
"""

import re
import logging
from typing import Dict, List, Optional

from ..models.pr_diff import DiffLine, FileDiff, Hunk
from ..models.review import CommentThread


logger = logging.getLogger(__name__)


class DiffParser:
    """
    Parser for GitHub PR file patches.

    Each hunk header seeds an old-file and a new-file line counter; every
    following line advances the counter(s) of the side(s) it belongs to, so
    each line can be tagged with its exact new-file line number.
    """

    def __init__(self):
        """Initialize diff parser."""
        self.diff_header_pattern = re.compile(r'^@@\s*-(\d+)(?:,(\d+))?\s*\+(\d+)(?:,(\d+))?\s*@@(.*)$')
        self.binary_file_pattern = re.compile(r'^Binary files? .* differ', re.MULTILINE)

    def parse_file_diff(
        self,
        file_data: Dict,
        comment_threads: Optional[List[CommentThread]] = None,
    ) -> FileDiff:
        """
        Parse a file entry from the "list pull request files" API.

        Args:
            file_data: File change data from GitHub API
            comment_threads: Existing review threads; those on this file are attached

        Returns:
            Structured FileDiff object
        """
        filename = file_data['filename']
        logger.debug(f"Parsing file diff: {filename}")

        threads = [t for t in (comment_threads or []) if t.file == filename]

        return FileDiff(
            filename=filename,
            status=file_data.get('status', 'modified'),
            hunks=self.parse_hunks(file_data.get('patch')),
            previous_filename=file_data.get('previous_filename'),
            additions=file_data.get('additions', 0),
            deletions=file_data.get('deletions', 0),
            comment_threads=threads,
        )

    def parse_hunks(self, patch: Optional[str]) -> List[Hunk]:
        """
        Parse a patch into ordered hunks.

        Files without a patch (binary, too large) produce no hunks.

        Args:
            patch: Raw diff patch string

        Returns:
            List of Hunk objects in source order
        """
        if not patch:
            return []

        if self.binary_file_pattern.search(patch):
            logger.debug("Skipping binary file diff")
            return []

        if patch.endswith('\n'):
            patch = patch[:-1]

        hunks = []
        header = None
        raw_lines: List[str] = []
        lines: List[DiffLine] = []
        old_line = new_line = 0
        old_len = new_len = 0

        for line in patch.split('\n'):
            header_match = self.diff_header_pattern.match(line)
            if header_match:
                if header is not None:
                    hunks.append(self._build_hunk(header, raw_lines, lines))

                old_start = int(header_match.group(1))
                old_len = int(header_match.group(2) or 1)
                new_start = int(header_match.group(3))
                new_len = int(header_match.group(4) or 1)

                header = (old_start, old_len, new_start, new_len)
                raw_lines = [line]
                lines = []
                old_line, new_line = old_start, new_start
                continue

            if header is None:
                # preamble before the first hunk (e.g. "diff --git" lines)
                continue

            raw_lines.append(line)

            if line.startswith('\\'):
                # "\ No newline at end of file"
                continue

            if line.startswith('+'):
                lines.append(DiffLine('added', line[1:], None, new_line if new_len else None))
                if new_len:
                    new_line += 1
            elif line.startswith('-'):
                lines.append(DiffLine('removed', line[1:], old_line if old_len else None, None))
                if old_len:
                    old_line += 1
            else:
                # context; an empty line is a context line with its space stripped
                lines.append(DiffLine(
                    'context',
                    line[1:] if line.startswith(' ') else line,
                    old_line if old_len else None,
                    new_line if new_len else None,
                ))
                if old_len:
                    old_line += 1
                if new_len:
                    new_line += 1

        if header is not None:
            hunks.append(self._build_hunk(header, raw_lines, lines))

        logger.debug(f"Parsed {len(hunks)} hunks")
        return hunks

    def _build_hunk(self, header, raw_lines: List[str], lines: List[DiffLine]) -> Hunk:
        old_start, old_len, new_start, new_len = header
        new_numbers = [line.new_line for line in lines if line.new_line is not None]
        end_line = max(new_numbers) if new_numbers else new_start

        return Hunk(
            start_line=new_start,
            end_line=max(end_line, new_start),
            diff='\n'.join(raw_lines),
            old_start=old_start,
            old_lines=old_len,
            new_start=new_start,
            new_lines=new_len,
            lines=list(lines),
        )


def annotate_hunk(hunk: Hunk) -> str:
    """
    Render a hunk with new-file line numbers.

    The ``__new hunk__`` block lists context and added lines prefixed by
    their new-file line number; the ``__old hunk__`` block lists removed and
    context lines and is only present when the hunk removes something.
    """
    header = hunk.diff.split('\n', 1)[0]
    parts = [header, '__new hunk__']

    for line in hunk.lines:
        if line.kind == 'removed':
            continue
        number = line.new_line if line.new_line is not None else ''
        parts.append(f"{number} {line.prefix}{line.content}")

    if hunk.removed_lines:
        parts.append('__old hunk__')
        for line in hunk.lines:
            if line.kind == 'added':
                continue
            parts.append(f"{line.prefix}{line.content}")

    return '\n'.join(parts)


def format_comment_thread(thread: CommentThread) -> str:
    """Render an existing review thread for prompt context."""
    root = thread.root
    if root.start_line is not None and root.line is not None and root.start_line < root.line:
        location = f"lines {root.start_line}-{root.line}"
    else:
        location = f"line {root.line if root.line is not None else root.start_line}"

    parts = [f"<thread file='{thread.file}' {location}>"]
    for comment in thread.comments:
        parts.append(f"@{comment.author}: {comment.body.strip()}")
    parts.append("</thread>")
    return '\n'.join(parts)


def generate_file_code_diff(file_diff: FileDiff) -> str:
    """Render the annotated diff of one file for the review prompt."""
    parts = [f"## File: '{file_diff.filename}'"]
    if file_diff.previous_filename:
        parts.append(f"(renamed from '{file_diff.previous_filename}')")

    for hunk in file_diff.hunks:
        parts.append('')
        parts.append(annotate_hunk(hunk))

    if file_diff.comment_threads:
        parts.append('')
        parts.append('## Existing review threads')
        for thread in file_diff.comment_threads:
            parts.append(format_comment_thread(thread))

    return '\n'.join(parts)
