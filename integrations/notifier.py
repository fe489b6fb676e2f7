import os
from datetime import datetime
from html import escape
from typing import Dict, Any, Optional

from loguru import logger

from callflow.nodes.prioritize import derive_priority
from callflow.state import CallSession
from integrations.resend_client import DEFAULT_SENDER, ResendClient

PRIORITY_COLORS = {
    "HIGH": "#ff4444",
    "MEDIUM": "#ff8800",
    "LOW": "#44ff44"
}

SECTION_STYLE = "color: #333; border-bottom: 2px solid #667eea; padding-bottom: 10px;"
LABEL_STYLE = "font-weight: bold; padding: 5px 0;"


def _text(value: Any, default: str = "") -> str:
    if value is None or value == "":
        return escape(default)
    return escape(str(value))


def _rows(rows) -> str:
    return "\n".join(
        f'<tr><td style="{LABEL_STYLE}">{label}:</td><td>{value}</td></tr>'
        for label, value in rows
    )


class LeadNotifier:
    """Formats a finished call session as a lead email and sends it."""

    def __init__(self, client: Optional[ResendClient] = None, recipient: Optional[str] = None,
                 sender: Optional[str] = None):
        self.client = client or ResendClient()
        self.recipient = recipient if recipient is not None else os.getenv("NOTIFICATION_EMAIL")
        self.sender = sender or os.getenv("NOTIFICATION_FROM", DEFAULT_SENDER)

        if not self.recipient:
            logger.warning("No NOTIFICATION_EMAIL configured, lead emails have no recipient")

    def notify(self, session: CallSession, priority: Optional[str] = None) -> bool:
        """
        Send the lead summary email. Never raises.

        Returns:
            True if the provider accepted the message
        """
        call_id = session.get("call_id", "unknown")
        if not self.recipient:
            logger.error(f"Lead notification for call {call_id} not sent: NOTIFICATION_EMAIL is not configured")
            return False

        try:
            priority = priority or derive_priority(session.get("qualification_score"))
            message = self.build_message(session, priority)
            self.client.send(message["subject"], message["html"], self.recipient, self.sender)
            logger.info(f"Lead notification sent for call {call_id} ({priority})")
            return True
        except Exception as e:
            logger.error(f"Lead notification failed for call {call_id}: {e}")
            return False

    def build_message(self, session: CallSession, priority: str) -> Dict[str, str]:
        """Build subject and HTML body for a lead."""
        return {
            "subject": self._build_subject(session, priority),
            "html": self._build_html(session, priority)
        }

    def _build_subject(self, session: CallSession, priority: str) -> str:
        who = session.get("company") or session.get("first_name") or "Unknown caller"
        score = session.get("qualification_score")
        score_text = score if score is not None else "N/A"
        return f"🔥 {priority} PRIORITY Inbound Lead - {who} (Score: {score_text})"

    def _build_html(self, session: CallSession, priority: str) -> str:
        color = PRIORITY_COLORS.get(priority, PRIORITY_COLORS["LOW"])
        score = session.get("qualification_score")
        score_text = _text(score, "N/A")

        try:
            duration = float(session.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0.0

        name = f"{session.get('first_name') or ''} {session.get('last_name') or ''}".strip()

        contact = _rows([
            ("Name", _text(name)),
            ("Phone", _text(session.get("phone_number"), "Unknown")),
            ("Email", _text(session.get("email"), "Not provided")),
            ("Company", _text(session.get("company"), "Not provided")),
            ("Industry", _text(session.get("industry"), "Not specified")),
            ("Company Size", _text(session.get("employee_count"), "Not specified")),
        ])
        intelligence = _rows([
            ("Pain Point", _text(session.get("pain_point"), "Not identified")),
            ("Timeline", _text(session.get("timeline"), "Not specified")),
            ("Budget Range", _text(session.get("budget"), "Not discussed")),
            ("Specific Needs", _text(session.get("specific_needs"), "Not specified")),
            ("Call Outcome", _text(session.get("call_outcome"), "Information gathering")),
            ("Next Steps", _text(session.get("next_steps"), "Follow-up required")),
        ])
        details = _rows([
            ("Call Duration", f"{round(duration)} seconds ({round(duration / 60)} minutes)"),
            ("Call Date", escape(datetime.now().strftime("%Y-%m-%d %H:%M:%S"))),
            ("Lead Source", "Inbound Call - Riley AI"),
        ])

        notes = ""
        if session.get("notes"):
            notes = f"""
            <h2 style="{SECTION_STYLE}">Riley's Notes</h2>
            <div style="background: white; padding: 15px; border-radius: 8px; border-left: 4px solid #667eea;">
              <p style="margin: 0;">{_text(session.get("notes"))}</p>
            </div>"""

        return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <div style="background: linear-gradient(90deg, #667eea 0%, #764ba2 100%); padding: 20px; text-align: center;">
            <h1 style="color: white; margin: 0;">New Inbound Lead via Riley AI</h1>
            <div style="background: {color}; color: white; padding: 8px 16px; border-radius: 20px; display: inline-block; margin-top: 10px; font-weight: bold;">
              {priority} PRIORITY (Score: {score_text}/10)
            </div>
          </div>
          <div style="padding: 30px; background: #f9f9f9;">
            <h2 style="{SECTION_STYLE}">Contact Information</h2>
            <table style="width: 100%; margin-bottom: 20px;">
{contact}
            </table>
            <h2 style="{SECTION_STYLE}">Lead Intelligence</h2>
            <table style="width: 100%; margin-bottom: 20px; background: white; padding: 15px; border-radius: 8px;">
{intelligence}
            </table>
            <h2 style="{SECTION_STYLE}">Call Details</h2>
            <table style="width: 100%; margin-bottom: 20px;">
{details}
            </table>{notes}
          </div>
          <div style="background: #333; color: white; padding: 15px; text-align: center;">
            <p style="margin: 0;">Generated by Riley AI Assistant | Questom Inbound Lead System</p>
          </div>
        </div>
        """
