"""
Unit tests for the review orchestrator, event context and entry points.
"""

import json
import logging
from pathlib import Path

import pytest
from unittest.mock import AsyncMock, Mock, patch

from presubmit_reviewer import cli, main
from presubmit_reviewer.config import (
    AppConfig,
    ConfigurationError,
    GitHubConfig,
    LLMConfig,
    LoggingConfig,
    ReviewConfig,
)
from presubmit_reviewer.context import EventContext, load_context
from presubmit_reviewer.formatting.messages import COMMENT_SIGNATURE
from presubmit_reviewer.github.client import GitHubClient
from presubmit_reviewer.llm.generator import ReviewGenerator
from presubmit_reviewer.llm.schemas import ReviewCommentReply
from presubmit_reviewer.models.pr_diff import FileDiff
from presubmit_reviewer.orchestrator import (
    ReviewOrchestrator,
    ReviewRunResult,
    missing_pull_request_fields,
    should_ignore_pull_request,
    should_use_custom_mode,
)


def make_config(**review):
    return AppConfig(
        github=GitHubConfig(token="t"),
        llm=LLMConfig(model="gpt-4o", api_key="k"),
        review=ReviewConfig(**review),
        logging=LoggingConfig(),
    )


PULL_REQUEST = {
    'number': 3,
    'title': 'feat: x',
    'body': 'Adds x',
    'head': {'sha': 'head'},
    'base': {'sha': 'base'},
}


class TestHelpers:
    """Unit tests for orchestrator decision helpers."""

    @pytest.mark.parametrize("description", [
        "Please @presubmit ignore this",
        "@PRESUBMIT: SKIP",
        "wip\n@presubmitai skip",
        "@presubmitai: ignore",
    ])
    def test_ignore_directives(self, description):
        assert should_ignore_pull_request(description) is True

    @pytest.mark.parametrize("description", [None, "", "@presubmit review please", "ignore @presubmit"])
    def test_no_ignore_directive(self, description):
        assert should_ignore_pull_request(description) is False

    def test_custom_mode(self):
        docs = [FileDiff('README.md', 'modified')]
        code = [FileDiff('README.md', 'modified'), FileDiff('src/App.TS', 'modified')]

        assert should_use_custom_mode(docs, "auto") is False
        assert should_use_custom_mode(code, "auto") is True
        assert should_use_custom_mode(docs, "on") is True
        assert should_use_custom_mode(code, "off") is False


class TestPullRequestHandler:
    """Unit tests for early exits of the pull request handler."""

    def setup_method(self):
        self.client = Mock(spec=GitHubClient)
        self.generator = Mock(spec=ReviewGenerator)
        self.orchestrator = ReviewOrchestrator(make_config(), self.client, generator=self.generator)

    @pytest.mark.asyncio
    async def test_ignore_directive_skips_without_calls(self):
        context = EventContext('pull_request', 'o', 'r', {
            'pull_request': dict(PULL_REQUEST, body='@presubmit ignore'),
        })

        result = await self.orchestrator.handle_event(context)

        assert result.status == "skipped"
        assert result.reason == "ignore directive"
        assert self.client.method_calls == []

    @pytest.mark.asyncio
    async def test_missing_pull_request(self):
        result = await self.orchestrator.handle_pull_request(EventContext('pull_request', 'o', 'r', {}))

        assert result.reason == "missing pull_request"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pull_request", [
        {'number': 3, 'body': '', 'title': 't'},
        dict(PULL_REQUEST, head={}),
        dict(PULL_REQUEST, base={'ref': 'main'}),
        {k: v for k, v in PULL_REQUEST.items() if k != 'number'},
    ])
    async def test_missing_pull_request_fields_skip(self, pull_request):
        result = await self.orchestrator.handle_event(
            EventContext('pull_request', 'o', 'r', {'pull_request': pull_request})
        )

        assert result.status == "skipped"
        assert result.reason == "missing pull_request fields"
        assert self.client.method_calls == []

    def test_missing_fields_listed(self):
        assert missing_pull_request_fields(PULL_REQUEST) == []
        assert missing_pull_request_fields({'number': 0}) == ['number', 'head.sha', 'base.sha']
        assert missing_pull_request_fields({'number': 1, 'head': {'sha': 'h'}}, require_base=False) == []

    @pytest.mark.asyncio
    async def test_unsupported_event(self):
        result = await self.orchestrator.handle_event(EventContext('push', 'o', 'r', {}))

        assert result.status == "skipped"
        self.client.assert_not_called()

    def test_generator_built_from_registry(self):
        provider = Mock()
        registry = Mock()
        registry.create.return_value = provider

        orchestrator = ReviewOrchestrator(make_config(review_scopes=['security']), self.client, registry=registry)

        assert orchestrator.generator.provider is provider
        assert orchestrator.generator.prompt_builder.review_scopes == ['security']


class TestReviewCommentHandler:
    """Unit tests for replies in review threads."""

    def setup_method(self):
        self.client = Mock(spec=GitHubClient)
        self.client.list_review_comments.return_value = [
            {'id': 10, 'path': 'a.py', 'body': 'Why?', 'line': 2, 'user': {'login': 'dev'}},
            {'id': 11, 'path': 'a.py', 'body': '@presubmit explain', 'in_reply_to_id': 10, 'user': {'login': 'dev'}},
        ]
        self.client.list_pull_request_files.return_value = [
            {'filename': 'a.py', 'status': 'modified', 'patch': '@@ -1,2 +1,2 @@\n a\n+b'},
        ]
        self.generator = Mock(spec=ReviewGenerator)
        self.orchestrator = ReviewOrchestrator(make_config(), self.client, generator=self.generator)

    def context(self, comment, action='created'):
        return EventContext('pull_request_review_comment', 'o', 'r', {
            'action': action,
            'comment': comment,
            'pull_request': PULL_REQUEST,
        })

    @pytest.mark.asyncio
    async def test_reply_posted_in_thread(self):
        self.generator.run_review_comment.return_value = ReviewCommentReply(
            action_requested=True, response_comment='Because.'
        )

        result = await self.orchestrator.handle_event(self.context({'id': 11, 'body': '@presubmit explain'}))

        assert result.reason == "replied"
        thread, file_diff = self.generator.run_review_comment.call_args[0]
        assert [c.id for c in thread.comments] == [10, 11]
        assert file_diff.filename == 'a.py'
        args, kwargs = self.client.create_review_comment.call_args
        assert args == ('o', 'r', 3, 'head')
        assert kwargs['in_reply_to'] == 10
        assert kwargs['path'] == 'a.py'
        assert kwargs['body'].endswith(COMMENT_SIGNATURE)

    @pytest.mark.asyncio
    async def test_no_reply_when_no_action_requested(self):
        self.generator.run_review_comment.return_value = ReviewCommentReply(action_requested=False)

        result = await self.orchestrator.handle_event(self.context({'id': 11, 'body': 'thanks'}))

        assert result.reason == "no action requested"
        self.client.create_review_comment.assert_not_called()

    @pytest.mark.asyncio
    async def test_own_comment_ignored(self):
        result = await self.orchestrator.handle_event(
            self.context({'id': 12, 'body': f"Done\n\n{COMMENT_SIGNATURE}"})
        )

        assert result.reason == "own comment"
        self.client.list_review_comments.assert_not_called()

    @pytest.mark.asyncio
    async def test_edited_comment_ignored(self):
        result = await self.orchestrator.handle_event(self.context({'id': 11, 'body': 'x'}, action='edited'))

        assert result.reason == "not a new comment"

    @pytest.mark.asyncio
    async def test_missing_payload_fields_skip(self):
        context = self.context({'id': 11, 'body': 'x'})
        context.payload['pull_request'] = {'number': 3}

        result = await self.orchestrator.handle_event(context)

        assert result.reason == "missing pull_request fields"
        self.client.list_review_comments.assert_not_called()

    @pytest.mark.asyncio
    async def test_thread_not_found(self):
        result = await self.orchestrator.handle_event(self.context({'id': 99, 'body': 'x'}))

        assert result.reason == "thread not found"
        self.generator.run_review_comment.assert_not_called()

    @pytest.mark.asyncio
    async def test_file_not_in_pull_request(self):
        self.client.list_pull_request_files.return_value = [{'filename': 'other.py', 'patch': ''}]

        result = await self.orchestrator.handle_event(self.context({'id': 11, 'body': 'x'}))

        assert result.reason == "file not in pull request"


class TestLoadContext:
    """Unit tests for event context loading."""

    def test_event_file(self, tmp_path):
        event_path = tmp_path / "event.json"
        event_path.write_text(json.dumps({'action': 'opened', 'pull_request': PULL_REQUEST}), encoding='utf-8')

        context = load_context(env={
            'GITHUB_EVENT_NAME': 'pull_request',
            'GITHUB_EVENT_PATH': str(event_path),
            'GITHUB_REPOSITORY': 'octo/repo',
        })

        assert (context.owner, context.repo) == ('octo', 'repo')
        assert context.action == 'opened'
        assert context.pull_request['number'] == 3

    def test_debug_context_fetches_pull_request(self):
        client = Mock(spec=GitHubClient)
        client.get_pull_request.return_value = PULL_REQUEST
        client.get_review_comment.return_value = {'id': 7}

        context = load_context(client, env={
            'DEBUG': '1',
            'GITHUB_REPOSITORY': 'octo/repo',
            'GITHUB_PULL_REQUEST': '3',
            'GITHUB_EVENT_NAME': 'pull_request_review_comment',
            'GITHUB_EVENT_ACTION': 'created',
            'GITHUB_COMMENT_ID': '7',
        })

        client.get_pull_request.assert_called_once_with('octo', 'repo', 3)
        assert context.event_name == 'pull_request_review_comment'
        assert context.comment == {'id': 7}

    def test_debug_context_requires_client(self):
        with pytest.raises(ConfigurationError):
            load_context(None, env={'DEBUG': 'true', 'GITHUB_REPOSITORY': 'o/r', 'GITHUB_PULL_REQUEST': '1'})

    def test_invalid_repository(self):
        with pytest.raises(ConfigurationError):
            load_context(env={'GITHUB_EVENT_NAME': 'pull_request', 'GITHUB_REPOSITORY': 'norepo'})


class TestEntryPoints:
    """Unit tests for the action entry point and local CLI."""

    def test_unsupported_event_exits_cleanly(self, caplog):
        with caplog.at_level(logging.WARNING):
            with patch.object(main, 'ConfigManager') as manager:
                code = main.run({'GITHUB_EVENT_NAME': 'push'})

        assert code == 0
        assert "Skipped: unsupported github event" in caplog.text
        manager.assert_not_called()

    def test_failure_exits_with_error(self, caplog):
        with caplog.at_level(logging.ERROR):
            with patch.object(main, 'ConfigManager', side_effect=ConfigurationError("GITHUB_TOKEN is not set")):
                code = main.run({'GITHUB_EVENT_NAME': 'pull_request'})

        assert code == 1
        assert "Failed with error: GITHUB_TOKEN is not set" in caplog.text

    def test_injected_env_configures_whole_run(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        env = {
            'GITHUB_EVENT_NAME': 'pull_request',
            'GITHUB_TOKEN': 'env-token',
            'LLM_MODEL': 'gpt-4o',
            'LLM_API_KEY': 'k',
            'DRY_RUN': '1',
        }

        with patch.object(main, 'ConfigManager', side_effect=lambda config: Mock(config=config)) as manager, \
                patch.object(main, 'load_context') as load, \
                patch.object(main, 'ReviewOrchestrator') as orchestrator_cls:
            orchestrator_cls.return_value.handle_event = AsyncMock(return_value=ReviewRunResult.skipped("no new commits"))
            code = main.run(env)

        assert code == 0
        config = manager.call_args[0][0]
        assert config.github.token == 'env-token'
        assert config.review.dry_run is True
        assert load.call_args[0][1] is env

    def test_build_client_follows_config(self):
        config = make_config(dry_run=True)

        client = main.build_client(config)

        assert client.dry_run is True
        assert client.rate_limit_policy.max_retries == 3

    def test_output_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert cli.output_path(4, None) is None
        assert cli.output_path(4, True) == tmp_path / "dry" / "pr-4.txt"
        assert cli.output_path(4, "logs/x.txt") == tmp_path / "logs" / "x.txt"
        assert cli.output_path(4, "/abs/x.txt") == Path("/abs/x.txt")

    def test_parser_options(self):
        args = cli.build_parser().parse_args(["--pr", "12", "--owner", "o", "--repo", "r", "--dry-run", "--out"])

        assert args.pr == 12
        assert (args.owner, args.repo) == ("o", "r")
        assert args.dry_run is True
        assert args.full is False
        assert args.out is True

    def test_list_prs(self, monkeypatch, capsys):
        monkeypatch.setenv("GITHUB_TOKEN", "t")
        with patch.object(cli, 'GitHubClient') as client_cls:
            client_cls.return_value.list_pull_requests.return_value = [
                {'number': 5, 'title': 'Fix', 'user': {'login': 'dev'}},
            ]
            lines = cli.list_prs("o", "r", state="all", limit=3)

        assert lines == ["#5 Fix by @dev"]
        assert "#5 Fix by @dev" in capsys.readouterr().out
        client_cls.return_value.list_pull_requests.assert_called_once_with("o", "r", state="all", limit=3)

    def test_token_from_gh_cli(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.chdir(tmp_path)
        completed = Mock(stdout="gho_abc\n")

        with patch.object(cli.subprocess, 'run', return_value=completed):
            assert cli.resolve_github_token() == "gho_abc"

    def test_missing_token(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.chdir(tmp_path)

        with patch.object(cli.subprocess, 'run', side_effect=OSError("gh not found")):
            with pytest.raises(ConfigurationError):
                cli.resolve_github_token()
