"""
Brevo (Sendinblue) transactional email client.
"""
import logging
from typing import Optional, Dict, Any

import requests

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
ACCEPTED_STATUSES = (200, 201, 202)


class BrevoClient:
    def __init__(self, api_key: str, sender_email: str, sender_name: str = "BeautyOn", timeout: int = 10):
        self.sender = {"name": sender_name, "email": sender_email}
        self.timeout = timeout
        self.http = requests.Session()
        self.http.headers.update({
            "accept": "application/json",
            "content-type": "application/json",
            "api-key": api_key,
        })

    def _result(self, message_id: Optional[str] = None, error: Optional[str] = None) -> Dict[str, Any]:
        return {"success": error is None, "message_id": message_id, "error": error}

    def send_email(self, to_email: str, subject: str, html_content: str, reply_to: Optional[dict] = None) -> Dict[str, Any]:
        """
        Send one HTML email. Never raises; returns
        {"success": bool, "message_id": Optional[str], "error": Optional[str]}.
        """
        body = {
            "sender": self.sender,
            "to": [{"email": to_email}],
            "subject": subject,
            "htmlContent": html_content,
        }
        if reply_to:
            body["replyTo"] = reply_to

        try:
            response = self.http.post(BREVO_API_URL, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Brevo request to {to_email} failed: {e}")
            return self._result(error=f"Network error sending to {to_email}: {e}")

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code in ACCEPTED_STATUSES:
            logger.info(f"Email sent to {to_email} ({data.get('messageId')})")
            return self._result(message_id=data.get("messageId"))

        detail = data.get("message") or response.text
        logger.error(f"Brevo rejected email to {to_email}: {response.status_code} - {detail}")
        return self._result(error=f"Brevo API error for {to_email}: {response.status_code} - {detail}")
