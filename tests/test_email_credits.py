import sys
import os
import unittest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakes import DatabaseTestCase, FakeEmailClient, fixed_clock
from models.email_log import EmailLog
from services.email_credits import EmailCreditGate
from services.errors import InsufficientCredits, UpstreamError


class TestEmailCreditGate(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.email = FakeEmailClient()
        self.gate = EmailCreditGate(self.db, self.email, fixed_clock)
        self.pro = self.make_professional(plan="starteris")

    def send(self):
        return self.gate.send(
            professional_id=self.pro.id,
            to_email="client@example.com",
            subject="Your booking is confirmed",
            html_content="<p>See you on Friday</p>",
            email_type="booking_confirmation",
        )

    def logs(self):
        return self.fresh_session().query(EmailLog).filter(EmailLog.professional_id == self.pro.id).all()

    def test_successful_send_costs_one_credit(self):
        self.set_credits(self.pro.id, 5)

        result = self.send()

        self.assertEqual(result, {"success": True, "messageId": "<msg-1@brevo>", "creditsRemaining": 4})
        self.assertEqual(self.credits_of(self.pro.id), 4)
        logs = self.logs()
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].recipient_email, "client@example.com")
        self.assertEqual(logs[0].email_type, "booking_confirmation")
        self.assertEqual(logs[0].status, "sent")
        self.assertEqual(logs[0].provider_message_id, "<msg-1@brevo>")

    def test_reply_to_is_passed_through(self):
        self.set_credits(self.pro.id, 2)
        self.gate.send(
            professional_id=self.pro.id,
            to_email="client@example.com",
            subject="Question",
            html_content="<p>Hi</p>",
            email_type="custom",
            reply_to={"email": "salons@inbox.lv"},
        )
        self.assertEqual(self.email.sent[0]["reply_to"], {"email": "salons@inbox.lv"})

    def test_last_credit(self):
        self.set_credits(self.pro.id, 1)
        self.assertEqual(self.send()["creditsRemaining"], 0)
        with self.assertRaises(InsufficientCredits):
            self.send()
        self.assertEqual(len(self.email.sent), 1)

    def test_zero_balance_never_calls_provider(self):
        self.set_credits(self.pro.id, 0)
        with self.assertRaises(InsufficientCredits) as ctx:
            self.send()
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(self.email.sent, [])
        self.assertEqual(self.logs(), [])

    def test_missing_balance_row_counts_as_zero(self):
        with self.assertRaises(InsufficientCredits):
            self.send()
        self.assertEqual(self.email.sent, [])

    def test_provider_failure_leaves_balance_and_log_untouched(self):
        self.set_credits(self.pro.id, 3)
        self.email.success = False
        self.email.error = "Brevo API error for client@example.com: 401 - Key not found"

        with self.assertRaises(UpstreamError) as ctx:
            self.send()

        self.assertEqual(ctx.exception.message, "Brevo API error for client@example.com: 401 - Key not found")
        self.assertEqual(self.credits_of(self.pro.id), 3)
        self.assertEqual(self.logs(), [])

    def test_credit_summary(self):
        self.set_credits(self.pro.id, 2)
        self.send()
        self.assertEqual(
            self.gate.credit_summary(self.pro.id),
            {"professionalId": self.pro.id, "credits": 1, "emailsSent": 1},
        )


if __name__ == "__main__":
    unittest.main()
