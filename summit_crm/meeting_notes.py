"""Meeting notes email to a student, copying the parent when one is on file."""
from typing import Any, Dict, Optional

from summit_crm.logging_conf import logger
from summit_crm.pipelines.common import HOME_PAGE_SHEET, HOME_PARENT_EMAIL_CELL, SIGNATURE, looks_like_email


def parent_email(document_store, student_url: str) -> Optional[str]:
    """Parent address from the student's Home Page, if it looks like an email."""
    try:
        document = document_store.open_document(student_url)
        home = document.get_sheet(HOME_PAGE_SHEET) if document else None
        if home is None:
            return None
        email = home.read_cell(HOME_PARENT_EMAIL_CELL).strip()
    except Exception as e:
        logger.warning(f"Could not read parent email from {student_url}: {e}")
        return None
    return email if looks_like_email(email) else None


def send_meeting_notes(
    notifier,
    document_store,
    student_name: str,
    meeting_time: str,
    notes: str,
    recipient_email: str,
    student_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Send meeting notes. Returns {"success": bool, "message": str}."""
    if not looks_like_email(recipient_email):
        return {"success": False, "message": "Failed to send email: Invalid email address"}
    if not student_name or not meeting_time or not notes:
        return {
            "success": False,
            "message": "Failed to send email: Missing required fields: student name, date/time, or notes",
        }

    cc = parent_email(document_store, student_url) if student_url else None
    subject = f"Summit Meeting Notes - {meeting_time}"
    body = f"Hi {student_name},\n\nNotes from our meeting on {meeting_time}:\n\n{notes}\n\n{SIGNATURE}"

    try:
        notifier.send(recipient_email, subject, body, cc=[cc] if cc else None)
    except Exception as e:
        logger.error(f"Error sending meeting notes email: {e}", exc_info=True)
        return {"success": False, "message": f"Failed to send email: {e}"}

    message = f"Email sent successfully to {recipient_email}"
    if cc:
        message += f" (CC: {cc})"
    logger.info(message)
    return {"success": True, "message": message}
