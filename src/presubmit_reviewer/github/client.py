"""
GitHub API Client

Handles GitHub API authentication, rate limiting, and communication.
Provides the pull request, comment and review endpoints used by the
reviewer, with dry-run support for every write.
"""

import re
import json
import time
import logging
from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)


# asyncio.to_thread runs at most 32 workers
POOL_MAXSIZE = 32


class GitHubAPIError(Exception):
    """GitHub API related errors"""
    def __init__(self, message: str, status_code: Optional[int] = None, response_data: Optional[Dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class RateLimitExceeded(GitHubAPIError):
    """GitHub API primary rate limit exceeded"""
    def __init__(self, reset_time: datetime):
        super().__init__(f"Rate limit exceeded. Resets at {reset_time}", status_code=403)
        self.reset_time = reset_time


class SecondaryRateLimitExceeded(GitHubAPIError):
    """GitHub API secondary (abuse detection) rate limit hit"""
    def __init__(self, method: str, endpoint: str):
        super().__init__(f"Secondary rate limit hit for {method} {endpoint}", status_code=403)
        self.method = method
        self.endpoint = endpoint


class RateLimitPolicy:
    """
    Decides whether a rate-limited request is retried.

    Primary limits are retried up to ``max_retries`` times. Secondary limits
    are retried the same number of times, except for write endpoints known
    to trigger false positives, where the hit is terminal for that call.
    """

    DEFAULT_NO_RETRY_SECONDARY = [
        ('POST', re.compile(r'^/repos/[^/]+/[^/]+/pulls/\d+/reviews$')),
        ('POST', re.compile(r'^/repos/[^/]+/[^/]+/pulls/\d+/reviews/\d+/events$')),
    ]

    def __init__(self, max_retries: int = 3, no_retry_secondary: Optional[List[Tuple[str, "re.Pattern"]]] = None):
        self.max_retries = max_retries
        self.no_retry_secondary = (
            no_retry_secondary if no_retry_secondary is not None else self.DEFAULT_NO_RETRY_SECONDARY
        )

    def on_rate_limit(self, retry_after: float, method: str, endpoint: str, retry_count: int) -> bool:
        logger.warning(f"Request quota exhausted for {method} {endpoint}")
        if retry_count <= self.max_retries:
            logger.info(f"Retrying after {retry_after:.0f} seconds (attempt {retry_count})")
            return True
        return False

    def on_secondary_rate_limit(self, retry_after: float, method: str, endpoint: str, retry_count: int) -> bool:
        logger.warning(f"Secondary rate limit detected for {method} {endpoint}")
        for no_retry_method, pattern in self.no_retry_secondary:
            if method.upper() == no_retry_method and pattern.match(endpoint):
                return False
        return retry_count <= self.max_retries


class GitHubClient:
    """
    GitHub API client with authentication, rate limiting, and error handling.

    Provides methods for:
    - Pull request, commit and file retrieval
    - Issue and review comment management
    - Review creation and submission
    - Dry-run mode, where writes are logged instead of sent
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout_seconds: int = 30,
        rate_limit_policy: Optional[RateLimitPolicy] = None,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize GitHub client.

        Args:
            token: GitHub token
            base_url: GitHub API base URL (default: https://api.github.com)
            timeout_seconds: Per-request timeout
            rate_limit_policy: Retry policy for rate-limited requests
            dry_run: Log write requests instead of sending them
            sleep: Sleep function used between rate limit retries
        """
        if not token:
            raise ValueError("GitHub token is required")

        self.token = token
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.rate_limit_policy = rate_limit_policy or RateLimitPolicy()
        self.dry_run = dry_run
        self._sleep = sleep
        self.session = self._create_session()
        self.rate_limit_remaining = 5000
        self.rate_limit_reset = datetime.now()

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.session.headers)

    def _create_session(self) -> requests.Session:
        """Create requests session with retry strategy and authentication."""
        session = requests.Session()

        # Server errors only; rate limits go through RateLimitPolicy
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
        )
        # Shared by the worker threads of one run; sized for the default to_thread executor
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=POOL_MAXSIZE)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        # Set authentication headers
        session.headers.update({
            'Authorization': f'token {self.token}',
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'presubmit-reviewer/1.0'
        })

        return session

    def _update_rate_limit(self, response: requests.Response) -> None:
        """Update rate limit information from response headers."""
        if 'X-RateLimit-Remaining' in response.headers:
            self.rate_limit_remaining = int(response.headers['X-RateLimit-Remaining'])

        if 'X-RateLimit-Reset' in response.headers:
            reset_timestamp = int(response.headers['X-RateLimit-Reset'])
            self.rate_limit_reset = datetime.fromtimestamp(reset_timestamp)

    def _classify_rate_limit(self, response: requests.Response) -> Optional[str]:
        """Return 'primary', 'secondary' or None for a response."""
        if response.status_code not in (403, 429):
            return None

        if response.headers.get('X-RateLimit-Remaining') == '0':
            return 'primary'

        message = ''
        try:
            message = (response.json() or {}).get('message', '')
        except ValueError:
            pass
        if 'Retry-After' in response.headers or 'secondary rate limit' in message.lower():
            return 'secondary'

        if response.status_code == 429:
            return 'primary'
        return None

    def _retry_after(self, response: requests.Response, kind: str) -> float:
        if 'Retry-After' in response.headers:
            try:
                return float(response.headers['Retry-After'])
            except ValueError:
                pass
        if kind == 'primary':
            return max(0.0, (self.rate_limit_reset - datetime.now()).total_seconds())
        return 60.0

    def _make_request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Make authenticated request to GitHub API with rate limiting.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (without base URL)
            **kwargs: Additional arguments for requests

        Returns:
            Response object

        Raises:
            GitHubAPIError: For API errors
            RateLimitExceeded: When the primary rate limit retries are exhausted
            SecondaryRateLimitExceeded: When a secondary limit is not retried
        """
        endpoint = '/' + endpoint.lstrip('/')
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault('timeout', self.timeout_seconds)
        retry_count = 0

        while True:
            try:
                response = self.session.request(method, url, **kwargs)
            except requests.RequestException as e:
                logger.error(f"Request failed: {e}")
                raise GitHubAPIError(f"Request failed: {str(e)}")

            self._update_rate_limit(response)

            kind = self._classify_rate_limit(response)
            if kind is not None:
                retry_count += 1
                retry_after = self._retry_after(response, kind)
                if kind == 'primary':
                    if not self.rate_limit_policy.on_rate_limit(retry_after, method, endpoint, retry_count):
                        raise RateLimitExceeded(self.rate_limit_reset)
                elif not self.rate_limit_policy.on_secondary_rate_limit(retry_after, method, endpoint, retry_count):
                    raise SecondaryRateLimitExceeded(method, endpoint)
                self._sleep(retry_after)
                continue

            if not response.ok:
                try:
                    error_data = response.json() if response.content else {}
                except ValueError:
                    error_data = {}
                raise GitHubAPIError(
                    f"GitHub API error: {response.status_code} - {error_data.get('message', 'Unknown error')}",
                    status_code=response.status_code,
                    response_data=error_data
                )

            return response

    def _get(self, endpoint: str, **params):
        response = self._make_request('GET', endpoint, params=params or None)
        return response.json()

    def _write(self, method: str, endpoint: str, payload: Dict, dry_run_result: Optional[Dict] = None) -> Dict:
        """Send a write request, or log it in dry-run mode."""
        if self.dry_run:
            logger.info(
                f"DRY-RUN: would {method} {endpoint}: "
                f"{json.dumps(payload, ensure_ascii=False, sort_keys=True)}"
            )
            return dict(dry_run_result or {})

        response = self._make_request(method, endpoint, json=payload)
        return response.json() if response.content else {}

    def _paginate(self, endpoint: str, per_page: int = 100, limit: Optional[int] = None, **params) -> List[Dict]:
        """Collect all pages of a list endpoint."""
        items = []
        page = 1

        while True:
            page_items = self._get(endpoint, page=page, per_page=per_page, **params)
            if not isinstance(page_items, list) or not page_items:
                break

            items.extend(page_items)

            if len(page_items) < per_page or (limit is not None and len(items) >= limit):
                break

            page += 1

        return items[:limit] if limit is not None else items

    # Pull requests

    def get_pull_request(self, owner: str, repo: str, pr_number: int) -> Dict:
        """
        Get pull request information.

        Args:
            owner: Repository owner
            repo: Repository name
            pr_number: Pull request number

        Returns:
            Pull request data
        """
        logger.info(f"Fetching PR {owner}/{repo}#{pr_number}")
        return self._get(f'/repos/{owner}/{repo}/pulls/{pr_number}')

    def list_pull_requests(self, owner: str, repo: str, state: str = 'open', limit: int = 10) -> List[Dict]:
        """List pull requests of a repository, newest first."""
        if state not in {'open', 'closed', 'all'}:
            raise ValueError(f"Invalid state: {state}")
        logger.info(f"Listing {state} PRs for {owner}/{repo}")
        return self._paginate(f'/repos/{owner}/{repo}/pulls', limit=limit, state=state)

    def list_pull_request_commits(self, owner: str, repo: str, pr_number: int) -> List[Dict]:
        """Get commits of a pull request, oldest first."""
        logger.info(f"Fetching PR commits for {owner}/{repo}#{pr_number}")
        return self._paginate(f'/repos/{owner}/{repo}/pulls/{pr_number}/commits')

    def list_pull_request_files(self, owner: str, repo: str, pr_number: int) -> List[Dict]:
        """
        Get files changed in a pull request.

        Args:
            owner: Repository owner
            repo: Repository name
            pr_number: Pull request number

        Returns:
            List of file change data
        """
        logger.info(f"Fetching PR files for {owner}/{repo}#{pr_number}")
        files = self._paginate(f'/repos/{owner}/{repo}/pulls/{pr_number}/files')
        logger.info(f"Found {len(files)} changed files")
        return files

    def compare_commits(self, owner: str, repo: str, base: str, head: str) -> Dict:
        """Compare two revisions."""
        logger.info(f"Comparing {base[:7]}...{head[:7]} in {owner}/{repo}")
        return self._get(f'/repos/{owner}/{repo}/compare/{base}...{head}')

    def update_pull_request(self, owner: str, repo: str, pr_number: int, **fields) -> Dict:
        """Update pull request fields such as title or body."""
        return self._write(
            'PATCH', f'/repos/{owner}/{repo}/pulls/{pr_number}', fields,
            dry_run_result={'number': pr_number, **fields},
        )

    # Issue comments

    def list_issue_comments(self, owner: str, repo: str, issue_number: int) -> List[Dict]:
        """Get top-level comments of a pull request."""
        return self._paginate(f'/repos/{owner}/{repo}/issues/{issue_number}/comments')

    def create_issue_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Dict:
        return self._write(
            'POST', f'/repos/{owner}/{repo}/issues/{issue_number}/comments', {'body': body},
            dry_run_result={'id': 0, 'body': body},
        )

    def update_issue_comment(self, owner: str, repo: str, comment_id: int, body: str) -> Dict:
        return self._write(
            'PATCH', f'/repos/{owner}/{repo}/issues/comments/{comment_id}', {'body': body},
            dry_run_result={'id': comment_id, 'body': body},
        )

    # Review comments and reviews

    def list_review_comments(self, owner: str, repo: str, pr_number: int, page: int = 1, per_page: int = 100) -> List[Dict]:
        """Get one page of inline review comments."""
        return self._get(
            f'/repos/{owner}/{repo}/pulls/{pr_number}/comments',
            page=page, per_page=per_page,
        )

    def get_review_comment(self, owner: str, repo: str, comment_id: int) -> Dict:
        return self._get(f'/repos/{owner}/{repo}/pulls/comments/{comment_id}')

    def create_review_comment(self, owner: str, repo: str, pr_number: int, commit_id: str, **comment) -> Dict:
        """Create a single inline, file-level or reply review comment."""
        payload = {'commit_id': commit_id, **comment}
        return self._write(
            'POST', f'/repos/{owner}/{repo}/pulls/{pr_number}/comments', payload,
            dry_run_result={'id': 0, **payload},
        )

    def create_review(self, owner: str, repo: str, pr_number: int, commit_id: str, comments: List[Dict]) -> Dict:
        """Create a pending review carrying inline comments."""
        return self._write(
            'POST', f'/repos/{owner}/{repo}/pulls/{pr_number}/reviews',
            {'commit_id': commit_id, 'comments': comments},
            dry_run_result={'id': 0},
        )

    def submit_review(self, owner: str, repo: str, pr_number: int, review_id: int, body: str, event: str = 'COMMENT') -> Dict:
        return self._write(
            'POST', f'/repos/{owner}/{repo}/pulls/{pr_number}/reviews/{review_id}/events',
            {'event': event, 'body': body},
            dry_run_result={'id': review_id, 'state': event},
        )
