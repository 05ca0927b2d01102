"""
GitHub Integration Tests

Tests incremental reviews, dry runs and rate-limited submissions against
the GitHub client with the HTTP session mocked out.
"""

import logging

import pytest
from unittest.mock import Mock, patch

from presubmit_reviewer.config import AppConfig, GitHubConfig, LLMConfig, LoggingConfig, ReviewConfig
from presubmit_reviewer.context import EventContext
from presubmit_reviewer.formatting.messages import (
    OVERVIEW_MESSAGE_SIGNATURE,
    PAYLOAD_TAG_CLOSE,
    PAYLOAD_TAG_OPEN,
)
from presubmit_reviewer.github.client import GitHubClient
from presubmit_reviewer.llm.generator import ReviewGenerator
from presubmit_reviewer.llm.prompts import PromptBuilder
from presubmit_reviewer.llm.schemas import PullRequestSummary, ReviewResponse
from presubmit_reviewer.orchestrator import ReviewOrchestrator
from presubmit_reviewer.review.state import decode_review_state


METRICS = {'estimated_effort_to_review': 1, 'score': 90, 'has_relevant_tests': True, 'security_concerns': 'None'}


def make_config(**review):
    return AppConfig(
        github=GitHubConfig(token="t"),
        llm=LLMConfig(model="gpt-4o", api_key="k"),
        review=ReviewConfig(**review),
        logging=LoggingConfig(),
    )


def make_response(status=200, json_data=None, headers=None):
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.headers = headers or {}
    response.json.return_value = json_data if json_data is not None else {}
    response.content = b'{}' if json_data is not None else b''
    return response


def make_provider(comments=None):
    provider = Mock()

    def run_prompt(prompt, system_prompt, schema):
        if schema is PullRequestSummary:
            return {'title': 'feat: b', 'description': 'Changes b'}
        if schema is ReviewResponse:
            return {'review': METRICS, 'comments': comments or []}
        raise AssertionError(f"unexpected schema {schema}")

    provider.run_prompt.side_effect = run_prompt
    return provider


def commit(sha):
    return {'sha': sha, 'commit': {'message': f'change {sha}'}}


def overview_comment(commits, comment_id=5):
    shas = ', '.join(f'"{sha}"' for sha in commits)
    return {
        'id': comment_id,
        'body': f'{OVERVIEW_MESSAGE_SIGNATURE}\nWalkthrough\n{PAYLOAD_TAG_OPEN}{{"version":1,"commits":[{shas}]}}{PAYLOAD_TAG_CLOSE}',
    }


FILES = [
    {'filename': 'a.py', 'status': 'modified', 'patch': '@@ -1,1 +1,1 @@\n-a = 0\n+a = 1'},
    {'filename': 'b.py', 'status': 'modified', 'patch': '@@ -1,1 +1,2 @@\n b = 1\n+b += 1'},
]

EVENT = EventContext('pull_request', 'o', 'r', {
    'action': 'synchronize',
    'pull_request': {
        'number': 3,
        'title': 'Update b',
        'body': '',
        'head': {'sha': 'c3'},
        'base': {'sha': 'base0'},
    },
})


class TestIncrementalReview:
    """Test reviews of pull requests that were reviewed before."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = Mock(spec=GitHubClient)
        self.client.list_pull_request_commits.return_value = [commit('c1'), commit('c2'), commit('c3')]
        self.client.list_pull_request_files.return_value = FILES
        self.client.list_review_comments.return_value = []
        self.client.compare_commits.return_value = {'files': [{'filename': 'b.py'}]}
        self.client.create_review.return_value = {'id': 8}
        self.provider = make_provider()
        self.orchestrator = ReviewOrchestrator(
            make_config(),
            self.client,
            generator=ReviewGenerator(self.provider, PromptBuilder()),
        )

    @pytest.mark.asyncio
    async def test_only_new_commits_reviewed(self):
        self.client.list_issue_comments.return_value = [{'id': 1, 'body': 'LGTM'}, overview_comment(['c1', 'c2'])]

        result = await self.orchestrator.handle_event(EVENT)

        self.client.compare_commits.assert_called_once_with('o', 'r', 'c2', 'c3')
        assert result.commits_reviewed == ['c3']
        assert result.files_reviewed == ['b.py']

        review_prompts = [c[0][0] for c in self.provider.run_prompt.call_args_list if c[0][2] is ReviewResponse]
        assert len(review_prompts) == 1
        assert "## File: 'b.py'" in review_prompts[0]
        assert "## File: 'a.py'" not in review_prompts[0]

    @pytest.mark.asyncio
    async def test_overview_comment_reused_and_state_appended(self):
        self.client.list_issue_comments.return_value = [overview_comment(['c1', 'c2'])]

        result = await self.orchestrator.handle_event(EVENT)

        self.client.create_issue_comment.assert_not_called()
        updates = self.client.update_issue_comment.call_args_list
        assert {c[0][2] for c in updates} == {5}
        # loading and summary bodies keep the previous state until the run completes
        assert decode_review_state(updates[0][0][3]).commits == ['c1', 'c2']
        assert decode_review_state(updates[-1][0][3]).commits == ['c1', 'c2', 'c3']
        assert result.state.commits == ['c1', 'c2', 'c3']

    @pytest.mark.asyncio
    async def test_nothing_new_is_skipped(self):
        self.client.list_issue_comments.return_value = [overview_comment(['c1', 'c2', 'c3'])]

        result = await self.orchestrator.handle_event(EVENT)

        assert result.status == "skipped"
        assert result.reason == "no new commits"
        self.provider.run_prompt.assert_not_called()
        self.client.update_issue_comment.assert_not_called()
        self.client.create_review.assert_not_called()

    @pytest.mark.asyncio
    async def test_forced_full_review(self):
        self.client.list_issue_comments.return_value = [overview_comment(['c1', 'c2', 'c3'])]
        orchestrator = ReviewOrchestrator(
            make_config(force_full_review=True),
            self.client,
            generator=ReviewGenerator(self.provider, PromptBuilder()),
        )

        result = await orchestrator.handle_event(EVENT)

        assert result.status == "completed"
        assert result.files_reviewed == ['a.py', 'b.py']
        assert result.state.commits == ['c1', 'c2', 'c3']
        self.client.compare_commits.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_payload_falls_back_to_full_review(self):
        broken = {'id': 5, 'body': f'{OVERVIEW_MESSAGE_SIGNATURE}\n{PAYLOAD_TAG_OPEN}{{oops{PAYLOAD_TAG_CLOSE}'}
        self.client.list_issue_comments.return_value = [broken]

        result = await self.orchestrator.handle_event(EVENT)

        assert result.files_reviewed == ['a.py', 'b.py']
        assert result.overview_comment_id == 5
        self.client.create_issue_comment.assert_not_called()


class TestClientBackedRuns:
    """Test full runs through a real GitHubClient with a mocked session."""

    def setup_method(self):
        self.requests = []

    def route(self, extra=None):
        extra = extra or {}

        def request(method, url, **kwargs):
            self.requests.append((method, url))
            for (route_method, suffix), response in extra.items():
                if method == route_method and url.endswith(suffix):
                    return response() if callable(response) else response
            if method == 'GET' and url.endswith('/pulls/3/commits'):
                return make_response(json_data=[commit('c1')])
            if method == 'GET' and url.endswith('/issues/3/comments'):
                return make_response(json_data=[])
            if method == 'GET' and url.endswith('/pulls/3/files'):
                return make_response(json_data=FILES[:1])
            if method == 'POST' and url.endswith('/issues/3/comments'):
                return make_response(201, {'id': 70})
            if method == 'PATCH' and '/issues/comments/' in url:
                return make_response(json_data={'id': 70})
            if method == 'POST' and url.endswith('/pulls/3/comments'):
                return make_response(201, {'id': 71})
            raise AssertionError(f"unexpected request {method} {url}")

        return request

    @pytest.mark.asyncio
    async def test_dry_run_sends_no_writes(self, caplog):
        client = GitHubClient("t", dry_run=True, sleep=Mock())
        orchestrator = ReviewOrchestrator(
            make_config(dry_run=True),
            client,
            generator=ReviewGenerator(make_provider([
                {'file': 'a.py', 'end_line': 1, 'content': 'Check a', 'critical': True},
            ])),
        )

        with caplog.at_level(logging.INFO):
            with patch.object(client.session, 'request', side_effect=self.route()):
                result = await orchestrator.handle_event(EVENT)

        assert result.status == "completed"
        assert {method for method, _ in self.requests} == {'GET'}
        assert "DRY-RUN: would POST /repos/o/r/issues/3/comments" in caplog.text
        assert "DRY-RUN: would POST /repos/o/r/pulls/3/reviews:" in caplog.text
        assert "DRY-RUN: would POST /repos/o/r/pulls/3/reviews/0/events" in caplog.text
        assert "DRY-RUN: would PATCH /repos/o/r/issues/comments/0" in caplog.text

    @pytest.mark.asyncio
    async def test_secondary_limit_on_review_uses_fallback_once(self):
        sleep = Mock()
        client = GitHubClient("t", sleep=sleep)
        orchestrator = ReviewOrchestrator(
            make_config(),
            client,
            generator=ReviewGenerator(make_provider([
                {'file': 'a.py', 'end_line': 1, 'content': 'Check a', 'critical': True},
            ])),
        )
        limited = make_response(403, {'message': 'You have exceeded a secondary rate limit'}, {'Retry-After': '30'})

        with patch.object(client.session, 'request', side_effect=self.route({
            ('POST', '/pulls/3/reviews'): limited,
        })):
            result = await orchestrator.handle_event(EVENT)

        assert result.report.used_fallback is True
        assert [(r.path, r.success) for r in result.report.fallback] == [('a.py', True)]
        assert self.requests.count(('POST', 'https://api.github.com/repos/o/r/pulls/3/reviews')) == 1
        assert self.requests.count(('POST', 'https://api.github.com/repos/o/r/pulls/3/comments')) == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_primary_limit_on_read_is_retried(self):
        sleep = Mock()
        client = GitHubClient("t", sleep=sleep)
        orchestrator = ReviewOrchestrator(make_config(), client, generator=ReviewGenerator(make_provider()))
        responses = iter([
            make_response(429, {'message': 'API rate limit exceeded'}, {'X-RateLimit-Remaining': '0', 'Retry-After': '2'}),
            make_response(json_data=[commit('c1')]),
        ])

        with patch.object(client.session, 'request', side_effect=self.route({
            ('GET', '/pulls/3/commits'): lambda: next(responses),
            ('POST', '/pulls/3/reviews'): make_response(200, {'id': 9}),
            ('POST', '/pulls/3/reviews/9/events'): make_response(200, {'id': 9}),
        })):
            result = await orchestrator.handle_event(EVENT)

        assert result.status == "completed"
        sleep.assert_called_once_with(2.0)
