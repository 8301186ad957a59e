"""Gmail notifier: sends plain-text (optionally HTML) email via the Gmail API."""
import base64
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional

from summit_crm.google_client import GoogleClient
from summit_crm.logging_conf import logger


class GmailNotifier:
    """Send email as the delegated user.

    ``redirect_to`` replaces every recipient (test mode); ``dry_run`` logs
    instead of sending.
    """

    def __init__(
        self,
        client: GoogleClient,
        sender_address: str = "",
        sender_name: str = "Summit CRM",
        redirect_to: Optional[str] = None,
        dry_run: bool = False,
    ):
        self.client = client
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.redirect_to = redirect_to
        self.dry_run = dry_run

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        cc: Optional[List[str]] = None,
    ) -> str:
        """Send a message and return its Gmail message ID."""
        recipient = self.redirect_to or to
        if self.redirect_to:
            logger.info(f"Redirecting email for {to} to {self.redirect_to}")
            cc = None

        raw = self._create_message(recipient, subject, body, html_body, cc)

        if self.dry_run:
            logger.info(f"[dry run] Would send '{subject}' to {recipient}")
            return "dry-run"

        result = self.client.execute(
            self.client.gmail.users().messages().send(userId="me", body={"raw": raw})
        )
        message_id = result.get("id", "")
        logger.info(f"Sent '{subject}' to {recipient} ({message_id})")
        return message_id

    def _create_message(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str],
        cc: Optional[List[str]],
    ) -> str:
        msg = MIMEMultipart("alternative")
        msg["To"] = to
        msg["Subject"] = subject
        if self.sender_address:
            msg["From"] = formataddr((self.sender_name, self.sender_address))
        if cc:
            msg["Cc"] = ", ".join(cc)

        msg.attach(MIMEText(body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        return base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")
