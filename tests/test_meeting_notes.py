from summit_crm.meeting_notes import send_meeting_notes

from conftest import student_url


def test_parent_is_copied_from_home_page(store, notifier):
    doc = store.add("student-jane-doe", "Jane Doe")
    doc.sheet("Home Page").set("F11", " mom@x.com ")

    result = send_meeting_notes(
        notifier, store, "Jane Doe", "Mar 1, 4:00 PM", "Discussed essays.", "jane@x.com",
        student_url("student-jane-doe"),
    )

    assert result == {"success": True, "message": "Email sent successfully to jane@x.com (CC: mom@x.com)"}
    message = notifier.sent[0]
    assert message["cc"] == ["mom@x.com"]
    assert message["subject"] == "Summit Meeting Notes - Mar 1, 4:00 PM"
    assert "Discussed essays." in message["body"]


def test_invalid_parent_email_is_ignored(store, notifier):
    doc = store.add("student-jane-doe", "Jane Doe")
    doc.sheet("Home Page").set("F11", "ask at pickup")

    result = send_meeting_notes(
        notifier, store, "Jane Doe", "Mar 1", "Notes", "jane@x.com", student_url("student-jane-doe")
    )

    assert result["message"] == "Email sent successfully to jane@x.com"
    assert notifier.sent[0]["cc"] is None


def test_invalid_recipient(store, notifier):
    result = send_meeting_notes(notifier, store, "Jane Doe", "Mar 1", "Notes", "not-an-email")

    assert result == {"success": False, "message": "Failed to send email: Invalid email address"}
    assert notifier.sent == []


def test_send_failure_is_reported(store, notifier):
    notifier.error = RuntimeError("quota")

    result = send_meeting_notes(notifier, store, "Jane Doe", "Mar 1", "Notes", "jane@x.com")

    assert result == {"success": False, "message": "Failed to send email: quota"}
