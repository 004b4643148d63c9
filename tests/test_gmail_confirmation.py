"""
Tests for the mail specialist, the pending action store and the
confirmation flow (draft -> approval link -> send exactly once).
"""
import asyncio
import json
import pytest
from urllib.parse import parse_qs, urlparse

from polaris.confirmation import ConfirmationService, GmailSendExecutor
from polaris.models import ActionStatus, MailThread, SpecialistRequest
from polaris.specialists.gmail import GmailSpecialist, clamp_count
from polaris.storage import ClaimFailure

from conftest import FakeMailPort, failed, make_prediction, ok

DRAFT = json.dumps({
    "action": "draft", "to": "bob@example.com", "subject": "Status", "body": "All done.", "reply_lang": "en",
})


def thread(n: int) -> MailThread:
    return MailThread(
        thread_id=f"t{n}",
        subject=f"Subject {n}",
        sender=f"Sender {n}",
        permalink=f"https://mail.google.com/mail/#all/t{n}",
    )


def gmail(config_store, prediction, mail, pending_store):
    return GmailSpecialist(
        config_store,
        prediction,
        mail,
        pending_store,
        public_base_url="https://polaris.example.com/",
        pending_ttl_seconds=300,
    )


def action_id_from(message: str) -> str:
    url = message[message.index("(https://") + 1: message.rindex(")")]
    query = parse_qs(urlparse(url).query)
    assert query["action"] == ["gmail_send_confirm"]
    return query["id"][0]


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_read_none(config_store, pending_store):
    answer = json.dumps({"action": "read", "query": "from:alice", "count": 3})

    result = await gmail(config_store, make_prediction(ok(answer)), FakeMailPort(), pending_store)(
        SpecialistRequest(text="mail from alice")
    )

    assert result.message == '📭 No emails found for query: "from:alice"'


@pytest.mark.asyncio
async def test_read_one_has_link(config_store, pending_store):
    answer = json.dumps({"action": "read", "query": "is:unread", "count": 5})

    result = await gmail(config_store, make_prediction(ok(answer)), FakeMailPort([thread(1)]), pending_store)(
        SpecialistRequest(text="unread mail")
    )

    assert result.message == (
        "Found 1 email:\n• *Subject 1* (from Sender 1) [Open in Gmail](https://mail.google.com/mail/#all/t1)"
    )


@pytest.mark.asyncio
async def test_read_many_in_hebrew(config_store, pending_store):
    answer = json.dumps({"action": "read", "query": "is:unread", "count": 2, "reply_lang": "he"})
    mail = FakeMailPort([thread(1), thread(2), thread(3)])

    result = await gmail(config_store, make_prediction(ok(answer)), mail, pending_store)(
        SpecialistRequest(text="מיילים")
    )

    assert result.message == "נמצאו 2 אימיילים:\n• *Subject 1* (מאת Sender 1)\n• *Subject 2* (מאת Sender 2)"
    assert mail.searches == [("is:unread", 2)]


@pytest.mark.parametrize("raw,expected", [(None, 3), (0, 3), (1, 1), (50, 10), (-4, 1), ("7", 7), ("many", 3)])
def test_clamp_count(raw, expected):
    assert clamp_count(raw) == expected


# ---------------------------------------------------------------------------
# Draft -> confirm
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_draft_creates_pending_action_and_does_not_send(config_store, pending_store):
    mail = FakeMailPort()

    result = await gmail(config_store, make_prediction(ok(DRAFT)), mail, pending_store)(
        SpecialistRequest(text="email bob", user_id="me@example.com", space_id="spaces/1")
    )

    assert result.ok
    assert result.message.startswith("*Gmail Approval Needed*\n> **To:** bob@example.com\n> **Subject:** Status")
    assert "[CLICK HERE TO SEND NOW](https://polaris.example.com/confirm?" in result.message
    assert mail.sent == []

    action_id = action_id_from(result.message)
    assert action_id.startswith("gmail-send-")
    action = pending_store.get(action_id)
    assert action.status == ActionStatus.PENDING
    assert action.handler_key == "handle_gmail"
    assert action.user_id == "me@example.com"
    assert action.space_id == "spaces/1"
    assert action.payload["to"] == "bob@example.com"
    assert (action.expires_at - action.created_at).total_seconds() == 300


@pytest.mark.asyncio
async def test_draft_missing_field_is_help_without_pending_action(config_store, pending_store):
    answer = json.dumps({"action": "draft", "to": "bob", "subject": None, "body": None})
    specialist = gmail(config_store, make_prediction(ok(answer)), FakeMailPort(), pending_store)
    specialist.pending_store = None  # any save attempt would raise

    result = await specialist(SpecialistRequest(text="draft an email to bob"))

    assert not result.ok
    assert result.message == "⚠️ Please be more specific. I may need a recipient, subject, and body."


@pytest.mark.asyncio
async def test_prediction_failure_is_help(config_store, pending_store):
    result = await gmail(config_store, make_prediction(failed()), FakeMailPort(), pending_store)(
        SpecialistRequest(text="email")
    )

    assert not result.ok
    assert result.message.startswith("⚠️ ")


@pytest.mark.asyncio
async def test_confirm_sends_exactly_once(config_store, pending_store):
    mail = FakeMailPort()
    draft = await gmail(config_store, make_prediction(ok(DRAFT)), mail, pending_store)(
        SpecialistRequest(text="email bob")
    )
    action_id = action_id_from(draft.message)
    service = ConfirmationService(pending_store, {"handle_gmail": GmailSendExecutor(mail)})

    first = await service.confirm(action_id)
    second = await service.confirm(action_id)

    assert first.ok
    assert first.title == "✅ Success!"
    assert "bob@example.com" in first.body
    assert mail.sent == [("bob@example.com", "Status", "All done.")]
    assert pending_store.get(action_id).status == ActionStatus.COMPLETED

    assert not second.ok
    assert second.title == "❌ Action Failed"
    assert len(mail.sent) == 1


@pytest.mark.asyncio
async def test_concurrent_confirmations_send_once(config_store, pending_store):
    mail = FakeMailPort()
    action = pending_store.save("handle_gmail", {"to": "a@b.c", "subject": "s", "body": "b"}, ttl_seconds=300)
    service = ConfirmationService(pending_store, {"handle_gmail": GmailSendExecutor(mail)})

    pages = await asyncio.gather(*(service.confirm(action.action_id) for _ in range(5)))

    assert sum(page.ok for page in pages) == 1
    assert len(mail.sent) == 1


@pytest.mark.asyncio
async def test_failed_send_releases_for_retry(pending_store):
    mail = FakeMailPort(fail_send=True)
    action = pending_store.save("handle_gmail", {"to": "a@b.c", "subject": "s", "body": "b"}, ttl_seconds=300)
    service = ConfirmationService(pending_store, {"handle_gmail": GmailSendExecutor(mail)})

    page = await service.confirm(action.action_id)

    assert not page.ok
    assert page.title == "❌ Execution Failed"
    assert pending_store.get(action.action_id).status == ActionStatus.PENDING

    mail.fail_send = False
    retry = await service.confirm(action.action_id)
    assert retry.ok
    assert len(mail.sent) == 1


@pytest.mark.asyncio
async def test_incomplete_payload_fails_without_send(pending_store):
    mail = FakeMailPort()
    action = pending_store.save("handle_gmail", {"to": "a@b.c"}, ttl_seconds=300)
    service = ConfirmationService(pending_store, {"handle_gmail": GmailSendExecutor(mail)})

    page = await service.confirm(action.action_id)

    assert page.title == "❌ Action Failed"
    assert page.body == "The action payload was incomplete or corrupted."
    assert mail.sent == []


@pytest.mark.asyncio
async def test_unknown_and_missing_ids(pending_store):
    service = ConfirmationService(pending_store, {})

    missing = await service.confirm("gmail-send-nope")
    blank = await service.confirm("")

    assert missing.title == "❌ Action Failed"
    assert blank.title == "❌ Invalid Link"


@pytest.mark.asyncio
async def test_expired_link_is_refused(pending_store, utc_clock):
    mail = FakeMailPort()
    action = pending_store.save("handle_gmail", {"to": "a@b.c", "subject": "s", "body": "b"}, ttl_seconds=300)
    service = ConfirmationService(pending_store, {"handle_gmail": GmailSendExecutor(mail)})

    utc_clock.advance(seconds=301)
    page = await service.confirm(action.action_id)

    assert not page.ok
    assert page.body == "The approval link has expired."
    assert mail.sent == []


def test_page_html_escapes_values():
    from polaris.confirmation import ConfirmationPage

    html = ConfirmationPage(ok=True, title="✅ Success!", body="<script>").to_html()

    assert "<script>" not in html
    assert html.startswith("<h1>✅ Success!</h1>")


# ---------------------------------------------------------------------------
# Pending store
# ---------------------------------------------------------------------------

def test_claim_outcomes(pending_store, utc_clock):
    action = pending_store.save("handle_gmail", {"x": 1}, ttl_seconds=60, prefix="gmail-send")

    first = pending_store.claim(action.action_id)
    second = pending_store.claim(action.action_id)

    assert first.ok and first.action.status == ActionStatus.COMPLETED
    assert second.failure == ClaimFailure.ALREADY_COMPLETED
    assert pending_store.claim("nope").failure == ClaimFailure.NOT_FOUND

    other = pending_store.save("handle_gmail", {}, ttl_seconds=60)
    utc_clock.advance(seconds=60)
    assert pending_store.claim(other.action_id).failure == ClaimFailure.EXPIRED


def test_release_only_touches_completed(pending_store):
    action = pending_store.save("handle_gmail", {}, ttl_seconds=60)

    assert not pending_store.release(action.action_id)
    pending_store.claim(action.action_id)
    assert pending_store.release(action.action_id)
    assert pending_store.get(action.action_id).status == ActionStatus.PENDING


def test_purge_removes_old_finished_actions(pending_store, utc_clock):
    done = pending_store.save("handle_gmail", {}, ttl_seconds=60)
    pending_store.claim(done.action_id)
    expired = pending_store.save("handle_gmail", {}, ttl_seconds=60)

    utc_clock.advance(hours=2)
    live = pending_store.save("handle_gmail", {}, ttl_seconds=3600)
    recent_done = pending_store.save("handle_gmail", {}, ttl_seconds=60)
    pending_store.claim(recent_done.action_id)

    deleted = pending_store.purge(retention_hours=1)

    assert deleted == 2
    assert pending_store.get(done.action_id) is None
    assert pending_store.get(expired.action_id) is None
    assert pending_store.get(live.action_id) is not None
    assert pending_store.get(recent_done.action_id) is not None
