import asyncio
import dataclasses

import pytest

from cibot.core.exceptions import ConfigurationError, MalformedEventError
from cibot.schemas.actions import MetadataKey
from cibot.schemas.policy import JobKind
from cibot.services.builds.trigger import trigger_build

from conftest import FakePullRequests, make_pull_request, sha


def test_commit_trigger_dispatches(ctx, repo, dispatcher):
    action = asyncio.run(trigger_build(ctx, repo.id, JobKind.PUBLISH, sha("C").upper()))
    assert action.commit == sha("C")
    assert dispatcher.calls == [(JobKind.PUBLISH, sha("C"), None)]


def test_pull_request_trigger_builds_current_heads(ctx, repo, dispatcher, store):
    current = make_pull_request(repo, from_label="F2", to_label="M2")
    ctx = dataclasses.replace(ctx, pull_requests=FakePullRequests(current))

    action = asyncio.run(
        trigger_build(ctx, repo.id, JobKind.VERIFY_PR, sha("M1"), sha("F1"), 7)
    )

    assert action.commit == sha("M2")
    assert dispatcher.calls == [(JobKind.VERIFY_PR, sha("M2"), current)]
    assert store.rows[MetadataKey.for_pull_request(current)].build_started


def test_pull_request_trigger_needs_pull_request_source(ctx, repo):
    with pytest.raises(ConfigurationError):
        asyncio.run(trigger_build(ctx, repo.id, JobKind.VERIFY_PR, sha("M1"), sha("F1"), 7))


def test_bad_commit_id(ctx, repo, dispatcher):
    with pytest.raises(MalformedEventError):
        asyncio.run(trigger_build(ctx, repo.id, JobKind.PUBLISH, "abc123"))
    assert dispatcher.calls == []


def test_unknown_repository(ctx, dispatcher):
    with pytest.raises(ConfigurationError):
        asyncio.run(trigger_build(ctx, 999, JobKind.PUBLISH, sha("C")))
    assert dispatcher.calls == []
