"""
Event Context

Loads the triggering event: the GitHub Actions event file, or a debug
context assembled from environment variables and the GitHub API.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .config import ConfigurationError, _flag
from .github.client import GitHubClient


logger = logging.getLogger(__name__)


@dataclass
class EventContext:
    """트리거된 이벤트 정보"""
    event_name: str
    owner: str
    repo: str
    payload: Dict = field(default_factory=dict)

    @property
    def action(self) -> Optional[str]:
        return self.payload.get('action')

    @property
    def pull_request(self) -> Optional[Dict]:
        return self.payload.get('pull_request')

    @property
    def comment(self) -> Optional[Dict]:
        return self.payload.get('comment')


def _split_repository(repository: Optional[str]):
    if not repository or '/' not in repository:
        raise ConfigurationError(f"Invalid GITHUB_REPOSITORY: {repository!r}")
    owner, repo = repository.split('/', 1)
    return owner, repo


def load_debug_context(client: GitHubClient, env: Mapping[str, str]) -> EventContext:
    """Build an event context for a local run against a live PR."""
    owner, repo = _split_repository(env.get('GITHUB_REPOSITORY'))

    try:
        pr_number = int(env.get('GITHUB_PULL_REQUEST', ''))
    except ValueError:
        raise ConfigurationError("GITHUB_PULL_REQUEST must be a pull request number")

    payload = {
        'action': env.get('GITHUB_EVENT_ACTION', 'synchronize'),
        'pull_request': client.get_pull_request(owner, repo, pr_number),
    }

    comment_id = env.get('GITHUB_COMMENT_ID')
    if comment_id:
        payload['comment'] = client.get_review_comment(owner, repo, int(comment_id))

    logger.info(f"Loaded debug context for {owner}/{repo}#{pr_number}")
    return EventContext(
        event_name=env.get('GITHUB_EVENT_NAME', 'pull_request'),
        owner=owner,
        repo=repo,
        payload=payload,
    )


def load_context(client: Optional[GitHubClient] = None, env: Optional[Mapping[str, str]] = None) -> EventContext:
    """
    Load the event context.

    Args:
        client: GitHub client, required in debug mode
        env: Environment mapping (default: os.environ)

    Returns:
        EventContext for the current run
    """
    env = os.environ if env is None else env

    if _flag(env.get('DEBUG')):
        if client is None:
            raise ConfigurationError("GITHUB_TOKEN is not set")
        return load_debug_context(client, env)

    event_path = env.get('GITHUB_EVENT_PATH')
    payload = {}
    if event_path and Path(event_path).exists():
        with open(event_path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
    else:
        logger.warning("GITHUB_EVENT_PATH is not set or missing; using empty payload")

    repository = env.get('GITHUB_REPOSITORY') or (payload.get('repository') or {}).get('full_name')
    owner, repo = _split_repository(repository)

    return EventContext(
        event_name=env.get('GITHUB_EVENT_NAME', ''),
        owner=owner,
        repo=repo,
        payload=payload,
    )
