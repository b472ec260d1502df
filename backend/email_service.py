"""
SendGrid email service for the Real Estate CRM
- Lead reminder notifications
- Critical operator alerts (reminder scheduler down)
"""

import os
import html
import logging
from datetime import datetime, timezone
from typing import Tuple
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To

from config import APP_BASE_URL, parse_iso

logger = logging.getLogger("email_service")

# Configuration
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
ALERT_EMAIL = os.environ.get('ALERT_EMAIL', '')
SENDER_EMAIL = os.environ.get('SENDER_EMAIL', 'noreply@realestate-crm.app')

PRIORITY_COLORS = {
    "urgent": "#DC2626",
    "high": "#EA580C",
    "medium": "#D97706",
    "low": "#16A34A",
}


class EmailService:
    """Central email sender"""

    def __init__(self, api_key: str = None, sender: str = None, alert_recipient: str = None):
        self.api_key = SENDGRID_API_KEY if api_key is None else api_key
        self.sender = sender or SENDER_EMAIL
        self.alert_recipient = ALERT_EMAIL if alert_recipient is None else alert_recipient

    def send_email(self, to_email: str, subject: str, html_content: str, text_content: str = None) -> dict:
        """
        Send one email through SendGrid. Never raises.
        Returns {"success": bool, "error": str | None}
        """
        if not self.api_key:
            logger.error("SENDGRID_API_KEY not configured")
            return {"success": False, "error": "SENDGRID_API_KEY not configured"}

        if not to_email:
            return {"success": False, "error": "No recipient"}

        try:
            message = Mail(
                from_email=Email(self.sender, "Real Estate CRM"),
                to_emails=To(to_email),
                subject=subject,
                html_content=html_content,
                plain_text_content=text_content
            )

            sg = SendGridAPIClient(self.api_key)
            response = sg.send(message)

            if response.status_code in [200, 202]:
                logger.info(f"Email sent to {to_email}: {subject}")
                return {"success": True, "error": None}

            logger.error(f"Email send error: {response.status_code}")
            return {"success": False, "error": f"SendGrid status {response.status_code}"}

        except Exception as e:
            logger.error(f"Email send exception: {str(e)}")
            return {"success": False, "error": str(e)}

    # ==================== REMINDERS ====================

    def render_reminder_email(self, notification: dict, lead: dict) -> Tuple[str, str, str]:
        """Returns (subject, html, text) for a lead_reminder notification"""
        reminder = lead.get("reminder") or {}
        lead_name = lead.get("name") or "Lead"
        reminder_message = reminder.get("message") or "Follow up required"
        label = notification.get("metadata", {}).get("interval_label", "")
        priority = notification.get("priority", "medium")
        due = _format_due(reminder.get("date"))
        lead_url = f"{APP_BASE_URL.rstrip('/')}/leads/{lead.get('id', '')}"

        subject = f"⏰ Lead Reminder - {lead_name}" + (f" ({label})" if label else "")

        details = [
            ("Lead", lead_name),
            ("Email", lead.get("email") or "-"),
            ("Phone", lead.get("phone") or "-"),
            ("Status", lead.get("status") or "-"),
            ("Due", due),
        ]
        details_html = "".join(
            f"<li><strong>{k}:</strong> {html.escape(str(v))}</li>" for k, v in details
        )

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }}
                .container {{ max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }}
                .header {{ background: linear-gradient(135deg, #667EEA, #764BA2); color: white; padding: 30px; text-align: center; }}
                .header h1 {{ margin: 0; font-size: 24px; }}
                .content {{ padding: 30px; }}
                .badge {{ display: inline-block; padding: 4px 12px; border-radius: 20px; color: white; font-size: 12px; font-weight: bold; background-color: {PRIORITY_COLORS.get(priority, '#6B7280')}; }}
                .message {{ font-size: 16px; margin: 15px 0; }}
                .details {{ background: #F3F4F6; padding: 15px; border-radius: 4px; margin-top: 20px; }}
                .footer {{ background: #F9FAFB; padding: 15px; text-align: center; font-size: 12px; color: #6B7280; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>⏰ Lead Reminder</h1>
                </div>
                <div class="content">
                    <span class="badge">{html.escape(priority.upper())}</span>
                    <p class="message">{html.escape(notification.get("message", ""))}</p>
                    <p><strong>Reminder:</strong> {html.escape(reminder_message)}</p>
                    <div class="details"><ul>{details_html}</ul></div>
                    <p>
                        <a href="{html.escape(lead_url)}" style="display: inline-block; background: #3B82F6; color: white; padding: 10px 20px; text-decoration: none; border-radius: 4px;">
                            Open lead
                        </a>
                    </p>
                </div>
                <div class="footer">
                    Real Estate CRM - Automatic reminders
                </div>
            </div>
        </body>
        </html>
        """

        text_content = (
            f"Lead Reminder\n\n"
            f"{notification.get('message', '')}\n"
            f"Reminder: {reminder_message}\n"
            f"Due: {due}\n\n"
            f"Open lead: {lead_url}\n"
        )

        return subject, html_content, text_content

    # ==================== CRITICAL ALERTS ====================

    def send_critical_alert(self, alert_type: str, message: str, details: dict = None) -> dict:
        """Immediate operator alert (e.g. SCHEDULER_ERROR)"""
        if not self.alert_recipient:
            logger.warning(f"ALERT_EMAIL not configured, alert not sent: {alert_type}")
            return {"success": False, "error": "ALERT_EMAIL not configured"}

        subject = f"🚨 CRITICAL ALERT - {alert_type}"

        details_html = ""
        if details:
            details_html = "<ul>" + "".join(
                f"<li><strong>{html.escape(str(k))}:</strong> {html.escape(str(v))}</li>"
                for k, v in details.items()
            ) + "</ul>"

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; padding: 20px;">
            <h1 style="color: #DC2626;">🚨 CRITICAL ALERT</h1>
            <p style="color: #9CA3AF;">{datetime.now(timezone.utc).strftime('%d/%m/%Y %H:%M:%S')} UTC</p>
            <p><strong>Type:</strong> {html.escape(alert_type)}<br>
               <strong>Message:</strong> {html.escape(message)}</p>
            {details_html}
        </body>
        </html>
        """

        return self.send_email(self.alert_recipient, subject, html_content, f"{alert_type}: {message}")


def _format_due(value) -> str:
    try:
        return parse_iso(value).strftime('%d/%m/%Y %H:%M UTC')
    except ValueError:
        return str(value or "-")


# Global instance
email_service = EmailService()
