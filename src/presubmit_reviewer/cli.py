"""
Local CLI

List pull requests of a repository or run a review against one from a
developer machine.
"""

import argparse
import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import ConfigurationError
from .github.client import GitHubClient
from .main import run


logger = logging.getLogger(__name__)

DEFAULT_REPOSITORY = "presubmit/ai-reviewer"


def resolve_github_token() -> str:
    """Find a GitHub token in the environment, a local .env file or the gh CLI."""
    token = os.getenv("GITHUB_TOKEN")
    if token:
        return token

    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        token = os.getenv("GITHUB_TOKEN")
        if token:
            return token

    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"gh auth token failed: {e}")
    else:
        token = result.stdout.strip()
        if token:
            os.environ["GITHUB_TOKEN"] = token
            return token

    raise ConfigurationError("No GITHUB_TOKEN found; set env/.env or run `gh auth login`.")


def list_prs(owner: str, repo: str, state: str = "open", limit: int = 10) -> List[str]:
    """Print and return one line per pull request."""
    client = GitHubClient(
        resolve_github_token(),
        base_url=os.getenv("GITHUB_API_URL") or "https://api.github.com",
    )
    lines = [
        f"#{pr['number']} {pr['title']} by @{(pr.get('user') or {}).get('login', '')}"
        for pr in client.list_pull_requests(owner, repo, state=state, limit=limit)
    ]
    for line in lines:
        print(line)
    return lines


def output_path(pr_number: int, out) -> Optional[Path]:
    """Resolve the --out option; a bare flag selects dry/pr-<number>.txt."""
    if not out:
        return None
    if out is True:
        return Path.cwd() / "dry" / f"pr-{pr_number}.txt"
    path = Path(out)
    return path if path.is_absolute() else Path.cwd() / path


def review_pr(
    pr_number: int,
    owner: str,
    repo: str,
    dry_run: bool = False,
    full: bool = False,
    out=None,
) -> int:
    """
    Review a pull request with a local debug context.

    Args:
        pr_number: Pull request number
        owner: Repository owner
        repo: Repository name
        dry_run: Log writes instead of sending them
        full: Review every commit regardless of recorded state
        out: Capture log output to this path (True for the default path)

    Returns:
        Process exit code
    """
    resolve_github_token()

    os.environ["DEBUG"] = "1"
    os.environ["GITHUB_REPOSITORY"] = f"{owner}/{repo}"
    os.environ["GITHUB_PULL_REQUEST"] = str(pr_number)
    os.environ["GITHUB_EVENT_NAME"] = "pull_request"
    os.environ["GITHUB_EVENT_ACTION"] = "synchronize"
    if dry_run:
        os.environ["DRY_RUN"] = "1"
    if full:
        os.environ["FORCE_FULL_REVIEW"] = "1"

    path = output_path(pr_number, out)
    handler = None
    if path is not None:
        # Console handler first; basicConfig is a no-op once the root logger has handlers
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="w", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)

    try:
        return run()
    finally:
        if handler is not None:
            logging.getLogger().removeHandler(handler)
            handler.close()
            print(f"\n[dry-run] Saved output to {path}")


def build_parser() -> argparse.ArgumentParser:
    default_owner, _, default_repo = (os.getenv("GITHUB_REPOSITORY") or DEFAULT_REPOSITORY).partition("/")

    parser = argparse.ArgumentParser(prog="presubmit-review", description="Review GitHub pull requests locally.")
    parser.add_argument("--list-prs", action="store_true", help="list pull requests and exit")
    parser.add_argument("--state", choices=["open", "closed", "all"], default="open")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--pr", type=int, help="pull request number to review")
    parser.add_argument("--owner", default=default_owner)
    parser.add_argument("--repo", default=default_repo)
    parser.add_argument("--dry-run", action="store_true", help="log writes instead of posting")
    parser.add_argument("--full", action="store_true", help="ignore recorded review state")
    parser.add_argument(
        "--out", nargs="?", const=True, default=None,
        help="save output to a file (default: dry/pr-<number>.txt)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.list_prs:
        list_prs(args.owner, args.repo, state=args.state, limit=args.limit)
        return 0

    if args.pr:
        return review_pr(args.pr, args.owner, args.repo, dry_run=args.dry_run, full=args.full, out=args.out)

    build_parser().print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
