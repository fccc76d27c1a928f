import sys
import os
import unittest
from datetime import timedelta

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakes import (
    NOW,
    PRICE_BIZNESS,
    PRICE_PRO,
    PRICE_STARTERIS,
    PRICE_TO_PLAN,
    DatabaseTestCase,
    FakeStripeClient,
    fixed_clock,
)
from services.checkout import CheckoutService, PlanChangeOutcome
from services.errors import ProfessionalNotFound, UpstreamError
from utils.stripe_client import ProcessorError

SUCCESS_URL = "https://beautyon.lv/billing"
CANCEL_URL = "https://beautyon.lv/plans"


class TestCheckoutService(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.stripe = FakeStripeClient()
        self.service = CheckoutService(self.db, self.stripe, PRICE_TO_PLAN, fixed_clock)

    def checkout(self, professional_id, price_id=PRICE_PRO, existing=None):
        return self.service.create_or_change(
            price_id=price_id,
            professional_id=professional_id,
            success_url=SUCCESS_URL,
            cancel_url=CANCEL_URL,
            existing_subscription_id=existing,
        )

    def test_unknown_professional(self):
        with self.assertRaises(ProfessionalNotFound):
            self.checkout("999")
        self.assertEqual(self.stripe.calls, [])

    def test_new_subscription_opens_checkout_session(self):
        pro = self.make_professional()

        result = self.checkout(str(pro.id), price_id=PRICE_STARTERIS)

        self.assertFalse(result["subscriptionUpdated"])
        self.assertEqual(result["sessionId"], "cs_test_1")
        self.assertTrue(result["url"].startswith("https://checkout.stripe.com/"))

        _, price_id, customer_id, success_url, cancel_url, metadata = self.stripe.called("create_checkout_session")[0]
        self.assertEqual(price_id, PRICE_STARTERIS)
        self.assertEqual(customer_id, "cus_new_1")
        self.assertEqual(success_url, SUCCESS_URL + "?session_success=true&session_id={CHECKOUT_SESSION_ID}")
        self.assertEqual(cancel_url, CANCEL_URL)
        self.assertEqual(metadata, {"professionalId": str(pro.id), "priceId": PRICE_STARTERIS})

    def test_customer_is_created_once_and_persisted(self):
        pro = self.make_professional()
        self.checkout(pro.id)
        self.checkout(pro.id)

        self.assertEqual(len(self.stripe.called("create_customer")), 1)
        self.assertEqual(self.reload(pro.id).stripe_customer_id, "cus_new_1")

    def test_existing_customer_is_reused(self):
        pro = self.make_professional(stripe_customer_id="cus_existing")
        self.checkout(pro.id)
        self.assertEqual(self.stripe.called("create_customer"), [])
        self.assertEqual(self.stripe.called("create_checkout_session")[0][2], "cus_existing")

    def test_active_subscription_is_changed_in_place(self):
        pro = self.make_professional(stripe_customer_id="cus_1", plan="starteris", stripe_subscription_id="sub_1")
        self.stripe.add_subscription("sub_1", price_id=PRICE_STARTERIS, period_end=NOW + timedelta(days=10))

        result = self.checkout(pro.id, price_id=PRICE_BIZNESS, existing="sub_1")

        self.assertEqual(result, {"sessionId": None, "url": SUCCESS_URL, "subscriptionUpdated": True})
        self.assertEqual(self.stripe.called("swap_subscription_price"), [("swap_subscription_price", "sub_1", PRICE_BIZNESS)])
        self.assertEqual(self.stripe.called("create_checkout_session"), [])
        self.assertEqual(self.stripe.subscriptions["sub_1"].price_id, PRICE_BIZNESS)

    def test_stored_subscription_is_used_when_none_given(self):
        pro = self.make_professional(stripe_customer_id="cus_1", stripe_subscription_id="sub_1")
        self.stripe.add_subscription("sub_1", price_id=PRICE_STARTERIS)

        result = self.checkout(pro.id, price_id=PRICE_PRO)
        self.assertTrue(result["subscriptionUpdated"])

    def test_canceled_subscription_goes_through_checkout(self):
        pro = self.make_professional(stripe_customer_id="cus_1")
        self.stripe.add_subscription("sub_old", status="canceled")

        result = self.checkout(pro.id, existing="sub_old")

        self.assertFalse(result["subscriptionUpdated"])
        self.assertEqual(self.stripe.called("swap_subscription_price"), [])
        metadata = self.stripe.called("create_checkout_session")[0][5]
        self.assertEqual(metadata["previousSubscriptionId"], "sub_old")

    def test_failed_swap_falls_back_to_checkout(self):
        pro = self.make_professional(stripe_customer_id="cus_1")
        self.stripe.add_subscription("sub_1")
        self.stripe.errors["swap_subscription_price"] = ProcessorError("Card declined", code="card_declined", http_status=402)

        with self.assertLogs("services.checkout", level="WARNING") as logs:
            result = self.checkout(pro.id, existing="sub_1")

        self.assertFalse(result["subscriptionUpdated"])
        self.assertEqual(result["sessionId"], "cs_test_1")
        self.assertTrue(any("after failed plan change of sub_1: Card declined" in line for line in logs.output))

    def test_checkout_session_failure_is_fatal(self):
        pro = self.make_professional(stripe_customer_id="cus_1")
        self.stripe.errors["create_checkout_session"] = ProcessorError("Invalid price", code="resource_missing", http_status=400)

        with self.assertRaises(UpstreamError) as ctx:
            self.checkout(pro.id)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.message, "Invalid price")


class TestTryChangePlan(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.stripe = FakeStripeClient()
        self.service = CheckoutService(self.db, self.stripe, PRICE_TO_PLAN, fixed_clock)

    def test_outcomes(self):
        self.assertIs(self.service.try_change_plan(None, PRICE_PRO).outcome, PlanChangeOutcome.NOT_APPLICABLE)

        self.stripe.add_subscription("sub_past_due", status="past_due")
        self.assertIs(self.service.try_change_plan("sub_past_due", PRICE_PRO).outcome, PlanChangeOutcome.NOT_APPLICABLE)

        attempt = self.service.try_change_plan("sub_missing", PRICE_PRO)
        self.assertIs(attempt.outcome, PlanChangeOutcome.RECOVERABLE)
        self.assertEqual(attempt.error, "No such subscription")

        self.stripe.add_subscription("sub_ok")
        self.assertIs(self.service.try_change_plan("sub_ok", PRICE_PRO).outcome, PlanChangeOutcome.UPDATED)


if __name__ == "__main__":
    unittest.main()
