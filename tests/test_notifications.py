import smtplib
from types import SimpleNamespace

import requests

from finance_engine.models.alert_event import AlertEvent
from finance_engine.utils import notifications
from finance_engine.utils.notifications import (
    DANGER_COLOR,
    EmailNotifier,
    LoggingNotifier,
    NotificationDispatcher,
    WebhookNotifier,
    build_notifier,
    render_embed,
)

exceeded = AlertEvent(
    kind="budget_exceeded",
    rule_id="food-budget",
    rule_name="Food budget",
    title="Budget Exceeded (100%+)",
    message="You've exceeded your budget limit for Food",
    threshold=1000.0,
    current_value=1050.0,
    currency="ILS",
    level=100,
    period_id="2024-05",
    transaction={"amount": 100.0, "currency": "ILS", "type": "Expense", "date_iso": "2024-05-10T12:00:00"},
)


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


def test_embed_rendering():
    embed = render_embed(exceeded.kind, exceeded.to_dict())
    assert embed["title"] == "Budget Exceeded (100%+)"
    assert embed["color"] == DANGER_COLOR
    names = [field["name"] for field in embed["fields"]]
    assert names == ["Transaction Details", "Budget Status", "Rule Triggered"]
    assert "105.0%" in embed["fields"][1]["value"]
    assert "**Date:** 2024-05-10" in embed["fields"][0]["value"]


def test_webhook_success(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse(204)

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    notifier = WebhookNotifier("https://hooks.example.test/alerts", timeout=2.0)

    assert notifier.notify(exceeded.kind, exceeded.to_dict()) is True
    url, body, timeout = calls[0]
    assert url == "https://hooks.example.test/alerts"
    assert timeout == 2.0
    assert body["embeds"][0]["title"] == exceeded.title


def test_webhook_failures_return_false(monkeypatch):
    notifier = WebhookNotifier("https://hooks.example.test/alerts")

    monkeypatch.setattr(notifications.requests, "post", lambda *a, **kw: FakeResponse(500, "boom"))
    assert notifier.notify(exceeded.kind, exceeded.to_dict()) is False

    def timeout(*args, **kwargs):
        raise requests.Timeout("too slow")

    monkeypatch.setattr(notifications.requests, "post", timeout)
    assert notifier.notify(exceeded.kind, exceeded.to_dict()) is False

    assert WebhookNotifier("").notify(exceeded.kind, exceeded.to_dict()) is False


class FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        if FakeSMTP.fail:
            raise smtplib.SMTPException("rejected")
        FakeSMTP.sent.append(msg)


def test_email_notifier(monkeypatch):
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    FakeSMTP.sent, FakeSMTP.fail = [], False
    notifier = EmailNotifier("smtp.example.test", 587, "user", "secret", "alerts@example.test", "me@example.test")

    assert notifier.notify(exceeded.kind, exceeded.to_dict()) is True
    msg = FakeSMTP.sent[0]
    assert msg["Subject"] == exceeded.title
    assert msg["To"] == "me@example.test"

    FakeSMTP.fail = True
    assert notifier.notify(exceeded.kind, exceeded.to_dict()) is False


def test_dispatcher_runs_inline_without_scheduler():
    delivered = []

    class Sink:
        def notify(self, kind, payload):
            delivered.append((kind, payload["rule_id"]))
            return True

    NotificationDispatcher(Sink(), submit=lambda *args: False).dispatch(exceeded)
    assert delivered == [("budget_exceeded", "food-budget")]


def test_dispatcher_hands_off_to_scheduler():
    queued = []

    class Sink:
        def notify(self, kind, payload):
            raise AssertionError("should not be delivered inline")

    dispatcher = NotificationDispatcher(Sink(), submit=lambda func, *args: queued.append(args) or True)
    dispatcher.dispatch(exceeded)
    assert queued[0][0] == "budget_exceeded"


def test_dispatcher_swallows_sink_errors():
    class Sink:
        def notify(self, kind, payload):
            raise RuntimeError("sink down")

    dispatcher = NotificationDispatcher(Sink())
    dispatcher.dispatch(exceeded)
    assert dispatcher.deliver(exceeded.kind, exceeded.to_dict()) is False


def test_build_notifier_from_settings():
    config = SimpleNamespace(
        NOTIFIER_BACKEND="webhook",
        WEBHOOK_URL="https://hooks.example.test/alerts",
        WEBHOOK_TIMEOUT_SECONDS=3.0,
        SMTP_HOST="smtp.example.test",
        SMTP_PORT=587,
        SMTP_USERNAME="",
        SMTP_PASSWORD="",
        ALERT_EMAIL_FROM="",
        ALERT_EMAIL_TO="",
    )
    webhook = build_notifier(config)
    assert isinstance(webhook, WebhookNotifier)
    assert webhook.timeout == 3.0

    config.NOTIFIER_BACKEND = "email"
    assert isinstance(build_notifier(config), EmailNotifier)

    config.NOTIFIER_BACKEND = "carrier-pigeon"
    assert isinstance(build_notifier(config), LoggingNotifier)
