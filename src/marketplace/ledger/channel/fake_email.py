"""Fake email adapter — records sent emails for testing."""

from uuid import uuid4

from marketplace.ledger.channel.email_port import EmailPort


class FakeEmailAdapter(EmailPort):
    """Email adapter that keeps messages in memory.

    ``fail_times`` makes the next N sends fail before succeeding again, for
    exercising retries; ``should_succeed=False`` fails every send.
    """

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.attempts = 0
        self.should_succeed = True
        self.fail_times = 0
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, fail_times: int = 0, failure_reason: str = "Email delivery failed"):
        self.should_succeed = should_succeed
        self.fail_times = fail_times
        self.failure_reason = failure_reason

    def send(self, to, subject, body, html_body=None):
        self.attempts += 1
        if not self.should_succeed or self.fail_times > 0:
            self.fail_times = max(self.fail_times - 1, 0)
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "html_body": html_body,
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        self.sent_emails.clear()
        self.attempts = 0
        self.should_succeed = True
        self.fail_times = 0
        self.failure_reason = "Email delivery failed"
