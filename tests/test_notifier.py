import base64
import email
from unittest.mock import MagicMock

from summit_crm.notifier import GmailNotifier


def gmail_client():
    client = MagicMock()
    client.execute.return_value = {"id": "abc"}
    return client


def sent_message(client):
    send = client.gmail.users.return_value.messages.return_value.send
    assert send.call_args.kwargs["userId"] == "me"
    raw = send.call_args.kwargs["body"]["raw"]
    return email.message_from_bytes(base64.urlsafe_b64decode(raw))


def test_send_posts_raw_message():
    client = gmail_client()
    notifier = GmailNotifier(client, sender_address="crm@summit.test")

    assert notifier.send("jane@x.com", "Hello", "Body", cc=["parent@x.com"]) == "abc"

    message = sent_message(client)
    assert message["To"] == "jane@x.com"
    assert message["Cc"] == "parent@x.com"
    assert message["Subject"] == "Hello"
    assert "crm@summit.test" in message["From"]
    client.execute.assert_called_once()


def test_redirect_replaces_recipient_and_drops_cc():
    client = gmail_client()
    notifier = GmailNotifier(client, redirect_to="tester@summit.test")

    notifier.send("jane@x.com", "Hello", "Body", cc=["parent@x.com"])

    message = sent_message(client)
    assert message["To"] == "tester@summit.test"
    assert message["Cc"] is None


def test_dry_run_sends_nothing():
    client = gmail_client()
    notifier = GmailNotifier(client, dry_run=True)

    assert notifier.send("jane@x.com", "Hello", "Body") == "dry-run"
    client.execute.assert_not_called()
