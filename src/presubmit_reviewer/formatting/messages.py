"""
Reviewer Messages

Markers and markdown builders for the overview comment and the review
summary body.
"""

from typing import Dict, List, Optional

from ..llm.schemas import AIComment, PullRequestSummary
from ..models.pr_diff import FileDiff
from ..models.review import PullRequestRef


BOT_HANDLE = "presubmit"
BOT_MENTIONS = ("@presubmitai", "@presubmit")

COMMENT_SIGNATURE = "<sub>Reviewed by presubmit-reviewer</sub><!-- presubmit-reviewer:comment -->"
OVERVIEW_MESSAGE_SIGNATURE = "<!-- presubmit-reviewer:overview -->"
PAYLOAD_TAG_OPEN = "<!-- presubmit-reviewer:payload "
PAYLOAD_TAG_CLOSE = " presubmit-reviewer:payload -->"


def _short(sha: str) -> str:
    return sha[:7]


def _commit_line(commit: Dict) -> str:
    message = (commit.get('commit', {}).get('message') or '').split('\n', 1)[0]
    return f"- `{_short(commit['sha'])}` {message}".rstrip()


def build_loading_message(
    base_sha: str,
    commits: List[Dict],
    files: List[FileDiff],
    payload: str,
) -> str:
    """
    Build the placeholder shown while a review is running.

    The encoded payload of the previous state is kept in the body so an
    interrupted run does not lose review progress.
    """
    lines = [
        OVERVIEW_MESSAGE_SIGNATURE,
        "## ⏳ Reviewing changes",
        "",
        f"Analyzing {len(commits)} new commit(s) and {len(files)} file(s) "
        f"since `{_short(base_sha)}`.",
        "",
        "<details>",
        "<summary>Commits</summary>",
        "",
    ]
    lines.extend(_commit_line(c) for c in commits)
    lines.extend([
        "",
        "</details>",
        "",
        payload,
    ])
    return "\n".join(lines)


def build_overview_message(
    summary: PullRequestSummary,
    payload: str,
    documentation: Optional[str] = None,
) -> str:
    """Build the overview comment body with walkthrough and payload."""
    lines = [
        OVERVIEW_MESSAGE_SIGNATURE,
        "# 📖 Walkthrough",
        "",
        summary.description.strip(),
        "",
    ]

    if summary.files:
        lines.extend([
            "## Changes",
            "",
            "| File | Summary |",
            "|------|---------|",
        ])
        for file in summary.files:
            cell = file.summary.replace("\n", " ").replace("|", "\\|")
            lines.append(f"| `{file.filename}` | {cell} |")
        lines.append("")

    if documentation:
        lines.extend([
            "<details>",
            "<summary>📝 Documentation</summary>",
            "",
            documentation.strip(),
            "",
            "</details>",
            "",
        ])

    lines.append(payload)
    return "\n".join(lines)


def build_review_summary(
    pull_request: PullRequestRef,
    server_url: str,
    files: List[FileDiff],
    commits: List[Dict],
    inline_comments: List[AIComment],
    skipped_comments: List[AIComment],
) -> str:
    """Build the body of the submitted review."""
    repo_url = f"{server_url.rstrip('/')}/{pull_request.full_name}"

    lines = [
        "## Review Summary",
        "",
        f"**Commits Considered ({len(commits)})**",
    ]
    for commit in commits:
        message = (commit.get('commit', {}).get('message') or '').split('\n', 1)[0]
        lines.append(f"- [{_short(commit['sha'])}]({repo_url}/commit/{commit['sha']}): {message}".rstrip())

    lines.extend([
        "",
        f"**Files Processed ({len(files)})**",
    ])
    for file in files:
        lines.append(f"- {file.filename} ({len(file.hunks)} hunk{'s' if len(file.hunks) != 1 else ''})")

    lines.extend([
        "",
        f"**Actionable Comments ({len(inline_comments)})**",
    ])
    for comment in inline_comments:
        lines.append(f"- {_location(comment)} [{comment.label}] {comment.header or ''}".rstrip())

    lines.extend([
        "",
        f"**Skipped Comments ({len(skipped_comments)})**",
    ])
    for comment in skipped_comments:
        lines.append(f"- {_location(comment)} [{comment.label}] {comment.header or ''}".rstrip())

    return "\n".join(lines)


def _location(comment: AIComment) -> str:
    if comment.start_line and comment.end_line and comment.start_line < comment.end_line:
        return f"{comment.file} [{comment.start_line}-{comment.end_line}]"
    if comment.end_line:
        return f"{comment.file} [{comment.end_line}]"
    return comment.file
