"""
Action Entry Point

Dispatches the GitHub Actions event to the review orchestrator.
"""

import asyncio
import logging
import os
import sys
from typing import Mapping, Optional

from .config import AppConfig, ConfigManager
from .context import load_context
from .github.client import GitHubClient, RateLimitPolicy
from .orchestrator import PULL_REQUEST_EVENTS, REVIEW_COMMENT_EVENT, ReviewOrchestrator


logger = logging.getLogger(__name__)


def build_client(config: AppConfig) -> GitHubClient:
    return GitHubClient(
        token=config.github.token,
        base_url=config.github.api_base_url,
        timeout_seconds=config.github.timeout_seconds,
        rate_limit_policy=RateLimitPolicy(max_retries=config.github.max_rate_limit_retries),
        dry_run=config.review.dry_run,
    )


def run(env: Optional[Mapping[str, str]] = None) -> int:
    """
    Run the reviewer for the current event.

    Returns:
        Process exit code
    """
    env = os.environ if env is None else env

    try:
        event_name = env.get('GITHUB_EVENT_NAME', '')
        if event_name not in PULL_REQUEST_EVENTS and event_name != REVIEW_COMMENT_EVENT:
            logger.warning("Skipped: unsupported github event")
            return 0

        config = ConfigManager(AppConfig.from_env(env)).config
        client = build_client(config)
        context = load_context(client if config.debug else None, env)

        orchestrator = ReviewOrchestrator(config, client)
        result = asyncio.run(orchestrator.handle_event(context))
        logger.info(f"Run finished: {result.status}{f' ({result.reason})' if result.reason else ''}")
        return 0

    except Exception as e:
        logger.error(f"Failed with error: {e}")
        return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
