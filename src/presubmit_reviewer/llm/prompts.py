"""
Prompt Builder

Builds the system and user prompts for PR summarization, review
generation and replies in review threads.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..github.parser import annotate_hunk, generate_file_code_diff
from ..models.pr_diff import FileDiff
from ..models.review import CommentThread


logger = logging.getLogger(__name__)


DEFAULT_REVIEW_SCOPES = ["security", "performance", "best-practices"]

FOCUS_AREAS: Dict[str, str] = {
    "security": """**Security & Safety:**
- Identify potential security vulnerabilities (injection, authentication/authorization issues, data exposure)
- Flag unsafe operations, unvalidated inputs, and improper error handling
- Check for secrets, credentials, or sensitive data in code
- Verify proper input sanitization and output encoding""",

    "performance": """**Performance & Scalability:**
- Identify performance bottlenecks, inefficient algorithms, or resource leaks
- Flag N+1 queries, unnecessary loops, or blocking operations
- Check for proper caching strategies and resource management
- Verify efficient data structures and algorithms are used""",

    "best-practices": """**Code Quality & Maintainability:**
- Identify complex logic that could be simplified or refactored
- Flag code duplication, tight coupling, or violations of single responsibility
- Check for proper error handling and logging

**Testing & Reliability:**
- Identify missing test coverage for critical paths
- Verify edge cases and error conditions are tested

**Documentation & Communication:**
- Flag missing or unclear documentation for complex logic""",
}

DOCUMENTATION_INSTRUCTIONS = """<DOCUMENTATION>
In addition to review comments, generate a concise "documentation" field in markdown that the PR author can paste into the PR description or release notes:

## Summary
A brief 2-3 sentence overview of what this PR accomplishes and why it matters.

## Changes
- Bullet list of key changes, grouped, naming the files, functions or components affected

## Release Notes
A single paragraph suitable for end-user facing release notes. If this is purely internal, write "Internal changes only."

## Technical Notes (optional)
Breaking changes, new dependencies, configuration changes or performance implications.

Do not include test instructions, deployment steps, or rollback plans.
</DOCUMENTATION>"""

SUMMARY_SYSTEM_PROMPT = """You are an expert software engineer summarizing a GitHub Pull Request.
Describe what the PR changes and why, based only on the provided title, description, commit messages and diffs.
Propose a concise title following conventional commit style, a markdown description, a one-line summary per file, and the change types (e.g. BUG, TESTS, ENHANCEMENT, DOCUMENTATION, REFACTOR, OTHER)."""

CORE_SYSTEM_PROMPT = """<IMPORTANT INSTRUCTIONS>
You are an experienced senior software engineer reviewing a GitHub Pull Request.
Provide only high-value, actionable comments on code introduced in this PR (lines starting with '+' in a '__new hunk__' section).
Focus on bugs, security vulnerabilities, performance problems and maintainability issues. Skip minor style remarks unless they impact functionality.
Reference lines using the numbers shown in the '__new hunk__' sections. Keep code snippets under 15 lines.
Do not repeat points already raised in existing review threads."""

REVIEW_COMMENT_SYSTEM_PROMPT = """You are a senior software engineer taking part in a code review thread on a GitHub Pull Request.
Decide whether the latest comment in the thread asks you to do something or answer a question.
If it does, write a helpful, concise reply in markdown grounded in the shown diff. Otherwise set action_requested to false."""


class PromptBuilder:
    """
    Builds prompts for each model call.

    The review scopes select the focus areas of the custom review prompt;
    style guide rules are appended to both review prompts.
    """

    def __init__(
        self,
        review_scopes: Optional[List[str]] = None,
        style_guide_rules: str = "",
        max_summary_chars: int = 725000,
    ):
        """
        Initialize prompt builder.

        Args:
            review_scopes: Focus area names for the custom review prompt
            style_guide_rules: Free-form rules the review must enforce
            max_summary_chars: Character budget for diffs in the summary prompt
        """
        self.review_scopes = review_scopes if review_scopes is not None else list(DEFAULT_REVIEW_SCOPES)
        self.style_guide_rules = (style_guide_rules or "").strip()
        self.max_summary_chars = max_summary_chars

    def build_summary_prompt(
        self,
        pr_title: str,
        pr_description: str,
        commit_messages: List[str],
        files: List[FileDiff],
    ) -> Tuple[str, str]:
        """
        Build the PR summary prompt.

        Diffs are added file by file until the character budget is used up;
        the affected files list always names every file.

        Returns:
            Tuple of (system_prompt, prompt)
        """
        diffs = []
        used = 0
        for file_diff in files:
            diff = '\n'.join(hunk.diff for hunk in file_diff.hunks)
            entry = f"## {file_diff.filename}\n{diff}"
            if used + len(entry) > self.max_summary_chars:
                logger.debug(f"Summary diff budget reached at {file_diff.filename}")
                break
            diffs.append(entry)
            used += len(entry)

        affected = '\n'.join(f"- {f.status}: {f.filename}" for f in files)
        commits = '\n'.join(f"- {m.splitlines()[0] if m else ''}" for m in commit_messages)

        prompt = f"""
<PR title>
{pr_title}
</PR title>

<PR Description>
{pr_description}
</PR Description>

<Commit Messages>
{commits}
</Commit Messages>

<Affected Files>
{affected}
</Affected Files>

<File Diffs>
{chr(10).join(diffs)}
</File Diffs>
"""
        return SUMMARY_SYSTEM_PROMPT, prompt

    def build_review_prompt(
        self,
        pr_title: str,
        pr_description: str,
        pr_summary: str,
        files: List[FileDiff],
        custom: bool = False,
    ) -> Tuple[str, str]:
        """
        Build the review prompt for one batch of files.

        Args:
            pr_title: Current PR title
            pr_description: Current PR body
            pr_summary: Summary produced for this run
            files: Batch of file diffs
            custom: Use the focus-area prompt with documentation output

        Returns:
            Tuple of (system_prompt, prompt)
        """
        system_prompt = self._custom_system_prompt() if custom else self._core_system_prompt()

        file_diffs = '\n\n'.join(generate_file_code_diff(f) for f in files)
        prompt = f"""
<PR title>
{pr_title}
</PR title>

<PR Description>
{pr_description}
</PR Description>

<PR Summary>
{pr_summary}
</PR Summary>

<PR File Diffs>
{file_diffs}
</PR File Diffs>
"""
        return system_prompt, prompt

    def build_review_comment_prompt(self, thread: CommentThread, file_diff: FileDiff) -> Tuple[str, str]:
        """Build the prompt for replying in a review thread."""
        root = thread.root
        anchor_end = root.line if root.line is not None else root.start_line
        anchor_start = root.start_line if root.start_line is not None else anchor_end

        # Hunks overlapping the commented range
        hunks = [
            h for h in file_diff.hunks
            if h.start_line <= anchor_end and h.end_line >= anchor_start
        ] or file_diff.hunks

        conversation = '\n\n'.join(f"@{c.author}: {c.body.strip()}" for c in thread.comments)
        diff = '\n\n'.join(annotate_hunk(h) for h in hunks)

        prompt = f"""
<File>
{file_diff.filename} (lines {anchor_start}-{anchor_end})
</File>

<Diff>
{diff}
</Diff>

<Conversation>
{conversation}
</Conversation>
"""
        return REVIEW_COMMENT_SYSTEM_PROMPT, prompt

    def _style_guide_section(self, heading: str) -> str:
        if not self.style_guide_rules:
            return ""
        return f"\n\n{heading}:\n{self.style_guide_rules}"

    def _core_system_prompt(self) -> str:
        return (
            CORE_SYSTEM_PROMPT
            + self._style_guide_section("Guidelines for the review")
            + "\n</IMPORTANT INSTRUCTIONS>"
        )

    def _custom_system_prompt(self) -> str:
        focus_areas = '\n\n'.join(FOCUS_AREAS[s] for s in self.review_scopes if s in FOCUS_AREAS)
        if not focus_areas:
            focus_areas = '\n\n'.join(FOCUS_AREAS[s] for s in DEFAULT_REVIEW_SCOPES)

        return (
            CORE_SYSTEM_PROMPT
            + "\n\nFocus on the areas that matter most:\n\n"
            + focus_areas
            + "\n\n"
            + DOCUMENTATION_INSTRUCTIONS
            + self._style_guide_section("Guidelines to enforce (critical violations should be marked critical)")
            + "\n</IMPORTANT INSTRUCTIONS>"
        )
