"""
Notification Service
Delivers alert events to a webhook (Discord-style embeds), over SMTP, or to
the log. Delivery is best-effort: every sink returns False on failure
instead of raising.
"""
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Mapping

import requests

from finance_engine.models.alert_event import AlertEvent

logger = logging.getLogger(__name__)

WARNING_COLOR = 0xFF9900
DANGER_COLOR = 0xFF0000
INFO_COLOR = 0x3B82F6


def _transaction_field(tx: Mapping[str, Any]) -> Dict[str, Any]:
    date = (tx.get("date_iso") or "")[:10] or "N/A"
    lines = [
        f"**Amount:** {tx.get('amount')} {tx.get('currency')}",
        f"**Type:** {tx.get('type')}",
        f"**Category:** {tx.get('category') or 'N/A'}",
        f"**Account:** {tx.get('account') or 'N/A'}",
        f"**Date:** {date}",
    ]
    if tx.get("description"):
        lines.append(f"**Description:** {tx['description']}")
    if tx.get("person_company"):
        lines.append(f"**Merchant:** {tx['person_company']}")
    return {"name": "Transaction Details", "value": "\n".join(lines), "inline": False}


def render_embed(kind: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Render an alert payload as a Discord embed object."""
    currency = payload.get("currency", "")
    threshold = payload.get("threshold", 0)
    current = payload.get("current_value", 0)
    level = payload.get("level")

    if level is not None and level >= 100:
        color = DANGER_COLOR
    elif kind == "recurring_detected":
        color = INFO_COLOR
    else:
        color = WARNING_COLOR

    fields: List[Dict[str, Any]] = []
    if payload.get("transaction"):
        fields.append(_transaction_field(payload["transaction"]))

    if level is not None:
        percentage = current / threshold * 100 if threshold else 0.0
        fields.append(
            {
                "name": "Budget Status",
                "value": (
                    f"**Limit:** {threshold} {currency}\n"
                    f"**Spent:** {current:.2f} {currency} ({percentage:.1f}%)\n"
                    f"**Remaining:** {max(0.0, threshold - current):.2f} {currency}"
                ),
                "inline": False,
            }
        )
    else:
        fields.append({"name": "Threshold", "value": f"{threshold} {currency}", "inline": True})
        fields.append({"name": "Current Value", "value": f"{current:.2f} {currency}", "inline": True})

    fields.append(
        {
            "name": "Rule Triggered",
            "value": f"**Rule:** {payload.get('rule_name') or payload.get('rule_id')}",
            "inline": False,
        }
    )

    return {
        "title": payload.get("title") or "Transaction Alert",
        "description": payload.get("message", ""),
        "color": color,
        "timestamp": payload.get("created_at") or datetime.utcnow().isoformat(),
        "fields": fields,
        "footer": {"text": "Finance Alert System"},
    }


class LoggingNotifier:
    """Writes alerts to the log; the default sink for local runs."""

    def notify(self, kind: str, payload: Mapping[str, Any]) -> bool:
        logger.info(f"[{kind}] {payload.get('title')}: {payload.get('message')}")
        return True


class WebhookNotifier:
    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def notify(self, kind: str, payload: Mapping[str, Any]) -> bool:
        if not self.url:
            logger.warning("Webhook URL is not configured, dropping alert")
            return False
        try:
            response = requests.post(
                self.url,
                json={"embeds": [render_embed(kind, payload)]},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Webhook request failed for {kind}: {str(e)}")
            return False

        if 200 <= response.status_code < 300:
            logger.info(f"Webhook alert {kind} sent successfully")
            return True
        logger.error(f"Webhook failed: {response.status_code} - {response.text}")
        return False


class EmailNotifier:
    """Sends alerts over SMTP with STARTTLS, one message per alert."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        to_email: str,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.to_email = to_email

    def render(self, kind: str, payload: Mapping[str, Any]):
        embed = render_embed(kind, payload)
        rows = "".join(
            f"<tr><th style=\"text-align:left;\">{f['name']}</th>"
            f"<td>{f['value'].replace('**', '').replace(chr(10), '<br>')}</td></tr>"
            for f in embed["fields"]
        )
        body_html = f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #{embed['color']:06x};">{embed['title']}</h2>
            <p>{embed['description']}</p>
            <table>{rows}</table>
            <p style="color: #64748b; font-size: 12px;">{embed['footer']['text']}</p>
        </div>
    </body>
    </html>
    """
        body_text = f"{embed['title']}\n\n{embed['description']}\n\n" + "\n\n".join(
            f"{f['name']}:\n{f['value'].replace('**', '')}" for f in embed["fields"]
        )
        return embed["title"], body_html, body_text

    def notify(self, kind: str, payload: Mapping[str, Any]) -> bool:
        if not self.to_email:
            logger.warning("Alert recipient is not configured, dropping alert")
            return False

        subject, body_html, body_text = self.render(kind, payload)
        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_email
        msg["To"] = self.to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {str(e)}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error: {str(e)}")
            return False

        logger.info(f"Alert email {kind} sent successfully to {self.to_email}")
        return True


class NotificationDispatcher:
    """
    Hands alert events to the sink without blocking the caller.

    When the background scheduler is running each delivery becomes a
    one-shot job on it; otherwise delivery happens inline. Either way a
    failing sink is logged and never propagates.
    """

    def __init__(self, sink, submit=None):
        self.sink = sink
        self._submit = submit

    def dispatch(self, event: AlertEvent) -> None:
        payload = event.to_dict()
        if self._submit is not None and self._submit(self.deliver, event.kind, payload):
            return
        self.deliver(event.kind, payload)

    def deliver(self, kind: str, payload: Dict[str, Any]) -> bool:
        try:
            delivered = self.sink.notify(kind, payload)
        except Exception as e:
            logger.error(f"Alert delivery for rule {payload.get('rule_id')} failed: {str(e)}", exc_info=True)
            return False
        if not delivered:
            logger.warning(f"Alert {kind} for rule {payload.get('rule_id')} was not delivered")
        return bool(delivered)


def build_notifier(config):
    """Pick the sink named by NOTIFIER_BACKEND."""
    backend = (config.NOTIFIER_BACKEND or "log").lower()
    if backend == "webhook":
        return WebhookNotifier(config.WEBHOOK_URL, timeout=config.WEBHOOK_TIMEOUT_SECONDS)
    if backend == "email":
        return EmailNotifier(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USERNAME,
            password=config.SMTP_PASSWORD,
            from_email=config.ALERT_EMAIL_FROM,
            to_email=config.ALERT_EMAIL_TO,
        )
    if backend != "log":
        logger.warning(f"Unknown NOTIFIER_BACKEND {backend!r}, falling back to log")
    return LoggingNotifier()
