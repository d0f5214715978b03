import pytest

from cibot.core.exceptions import MalformedEventError
from cibot.schemas.events import PullRequestEventKind, PushEvent, RefChangeType
from cibot.services.webhooks.parsing import parse_pull_request, parse_webhook

from conftest import sha
from payloads import pr_comment, pr_merged, pr_opened, pull_request, refs_changed

ZERO = "0" * 40


def test_parse_refs_changed():
    payload = refs_changed(
        ("refs/heads/master", "UPDATE", sha("B"), sha("C")),
        ("refs/heads/old", "DELETE", sha("D"), ZERO),
    )

    event = parse_webhook("repo:refs_changed", payload)

    assert isinstance(event, PushEvent)
    assert event.repository.id == 42
    assert [(c.ref_id, c.type) for c in event.changes] == [
        ("refs/heads/master", RefChangeType.UPDATE),
        ("refs/heads/old", RefChangeType.DELETE),
    ]
    assert event.changes[0].to_hash == sha("C")


def test_parse_refs_changed_rejects_unknown_change_type():
    payload = refs_changed(("refs/heads/master", "RENAME", sha("B"), sha("C")))
    with pytest.raises(MalformedEventError):
        parse_webhook("repo:refs_changed", payload)


def test_parse_refs_changed_rejects_bad_hash():
    payload = refs_changed(("refs/heads/master", "UPDATE", sha("B"), "not-a-sha"))
    with pytest.raises(MalformedEventError):
        parse_webhook("repo:refs_changed", payload)


def test_parse_pull_request_opened():
    event = parse_webhook("pr:opened", pr_opened(from_label="F9", to_label="M9"))

    assert event.kind == PullRequestEventKind.OPENED
    pr = event.pull_request
    assert (pr.id, pr.from_sha, pr.to_sha) == (7, sha("F9"), sha("M9"))
    assert pr.to_ref.id == "refs/heads/master"
    assert pr.from_ref.display_id == "feature"
    assert pr.repository.project_key == "CORE"


@pytest.mark.parametrize("event_key", ["pr:from_ref_updated", "pr:modified"])
def test_rescope_keys(event_key):
    event = parse_webhook(event_key, pr_opened())
    assert event.kind == PullRequestEventKind.RESCOPED


def test_parse_comment_and_merge():
    comment = parse_webhook("pr:comment:added", pr_comment("==OVERRIDE== flaky"))
    assert comment.kind == PullRequestEventKind.COMMENTED
    assert comment.comment_text == "==OVERRIDE== flaky"

    merged = parse_webhook("pr:merged", pr_merged())
    assert merged.kind == PullRequestEventKind.MERGED
    assert merged.merge_commit == sha("MERGE")


def test_unhandled_event_key_is_ignored():
    assert parse_webhook("repo:comment:added", {}) is None
    # target branch moves are not a Bitbucket Server webhook
    assert parse_webhook("pr:to_ref_updated", pr_opened()) is None


@pytest.mark.parametrize("event_key", ["repo:refs_changed", "pr:opened"])
@pytest.mark.parametrize("payload", [[1], "text", 3])
def test_payload_must_be_an_object(event_key, payload):
    with pytest.raises(MalformedEventError, match="JSON object"):
        parse_webhook(event_key, payload)


def test_non_object_repository_is_malformed():
    with pytest.raises(MalformedEventError):
        parse_webhook("repo:refs_changed", {"repository": [1], "changes": []})


def test_parse_pull_request_missing_ref():
    data = pull_request()
    del data["toRef"]
    with pytest.raises(MalformedEventError):
        parse_pull_request(data)
