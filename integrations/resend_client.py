import os
from typing import Dict, Any, List, Optional, Union

import httpx
from loguru import logger

DEFAULT_SENDER = "Riley AI Assistant <riley@waitlist.software-use.com>"


class EmailSendError(Exception):
    """Raised when the email provider rejects or cannot take a message."""


class ResendClient:
    """Resend transactional email client."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 20):
        self.api_key = api_key if api_key is not None else os.getenv("RESEND_API_KEY")
        self.base_url = "https://api.resend.com"
        self.timeout = timeout

        if not self.api_key:
            logger.warning("No Resend API key provided, lead emails will not be sent")

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for Resend API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def send(self, subject: str, html: str, to: Union[str, List[str]], sender: str = DEFAULT_SENDER) -> Dict[str, Any]:
        """
        Send an HTML email.

        Args:
            subject: Subject line
            html: HTML body
            to: Recipient address or list of addresses
            sender: From header

        Returns:
            Provider response (contains the message id)

        Raises:
            EmailSendError: if the key is missing or the provider call fails
        """
        if not self.api_key:
            raise EmailSendError("RESEND_API_KEY is not configured")

        recipients = [to] if isinstance(to, str) else list(to)
        payload = {
            "from": sender,
            "to": recipients,
            "subject": subject,
            "html": html
        }

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/emails",
                    headers=self._get_headers(),
                    json=payload
                )
        except httpx.HTTPError as e:
            raise EmailSendError(f"Resend request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise EmailSendError(f"Resend API error {response.status_code}: {message}")

        data = response.json()
        logger.info(f"Resend accepted email {data.get('id')} for {', '.join(recipients)}")
        return data
