import sys
import os
import hashlib
import hmac
import json
import time
import unittest
from datetime import datetime
from unittest.mock import MagicMock, patch

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import requests
import stripe

from utils.email import BrevoClient
from utils.geocoding import GeocodingError, MapboxGeocoder
from utils.stripe_client import ProcessorError, StripeClient, WebhookSignatureError

PERIOD_END_TS = 1751328000  # 2025-07-01 00:00 UTC


def stripe_subscription(**values):
    data = {
        "id": "sub_1",
        "object": "subscription",
        "status": "active",
        "cancel_at_period_end": False,
        "customer": "cus_1",
        "items": {
            "object": "list",
            "data": [{"id": "si_1", "object": "subscription_item", "price": {"id": "price_pro", "object": "price"}}],
        },
    }
    data.update(values)
    return stripe.Subscription.construct_from(data, "sk_test_123")


def http_response(status_code, body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.content = json.dumps(body).encode() if body is not None else b""
    response.json.return_value = body if body is not None else {}
    response.text = text
    return response


class TestStripeClient(unittest.TestCase):
    def setUp(self):
        self.client = StripeClient("sk_test_123", webhook_secret="whsec_test")

    @patch("stripe.Subscription.retrieve")
    def test_period_end_read_from_subscription(self, retrieve):
        retrieve.return_value = stripe_subscription(current_period_end=PERIOD_END_TS)

        sub = self.client.retrieve_subscription("sub_1")

        self.assertEqual(sub.current_period_end, datetime(2025, 7, 1))
        self.assertEqual(sub.price_id, "price_pro")
        self.assertEqual(sub.item_id, "si_1")
        self.assertEqual(sub.customer_id, "cus_1")
        self.assertEqual(retrieve.call_args.kwargs["api_key"], "sk_test_123")

    @patch("stripe.Subscription.retrieve")
    def test_period_end_falls_back_to_item(self, retrieve):
        retrieve.return_value = stripe_subscription(items={
            "object": "list",
            "data": [{
                "id": "si_1",
                "object": "subscription_item",
                "current_period_end": PERIOD_END_TS,
                "price": {"id": "price_pro", "object": "price"},
            }],
        })

        sub = self.client.retrieve_subscription("sub_1")

        self.assertEqual(sub.current_period_end, datetime(2025, 7, 1))
        self.assertFalse(sub.cancel_at_period_end)

    @patch("stripe.Subscription.retrieve")
    def test_expanded_customer(self, retrieve):
        retrieve.return_value = stripe_subscription(customer={"id": "cus_9", "object": "customer"})
        self.assertEqual(self.client.retrieve_subscription("sub_1").customer_id, "cus_9")

    @patch("stripe.Subscription.retrieve")
    def test_missing_subscription_is_flagged(self, retrieve):
        retrieve.side_effect = stripe.InvalidRequestError(
            "No such subscription: 'sub_gone'", "id", code="resource_missing", http_status=404
        )

        with self.assertRaises(ProcessorError) as ctx:
            self.client.retrieve_subscription("sub_gone")

        self.assertTrue(ctx.exception.resource_missing)
        self.assertEqual(ctx.exception.http_status, 404)
        self.assertIn("No such subscription", ctx.exception.message)

    @patch("stripe.Subscription.modify")
    def test_other_errors_are_not_resource_missing(self, modify):
        modify.side_effect = stripe.APIConnectionError("Network unreachable")

        with self.assertRaises(ProcessorError) as ctx:
            self.client.cancel_at_period_end("sub_1")

        self.assertFalse(ctx.exception.resource_missing)
        self.assertIsNone(ctx.exception.code)

    def test_construct_event_with_valid_signature(self):
        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "invoice.paid",
            "data": {"object": {"id": "in_1", "object": "invoice", "subscription": "sub_1"}},
        })
        timestamp = int(time.time())
        digest = hmac.new(b"whsec_test", f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()

        event = self.client.construct_event(payload.encode(), f"t={timestamp},v1={digest}")

        self.assertEqual(event["id"], "evt_1")
        self.assertEqual(event["type"], "invoice.paid")
        self.assertEqual(event["object"]["subscription"], "sub_1")

    def test_construct_event_rejects_bad_signature(self):
        with self.assertRaises(WebhookSignatureError):
            self.client.construct_event(b'{"id": "evt_1"}', f"t={int(time.time())},v1=deadbeef")


class TestBrevoClient(unittest.TestCase):
    def setUp(self):
        self.client = BrevoClient("xkeysib-test", "noreply@beautyon.lv")

    def test_accepted_returns_message_id(self):
        with patch.object(self.client.http, "post", return_value=http_response(201, {"messageId": "<msg-1>"})) as post:
            result = self.client.send_email("klients@inbox.lv", "Hi", "<p>Hi</p>", reply_to={"email": "salons@inbox.lv"})

        self.assertEqual(result, {"success": True, "message_id": "<msg-1>", "error": None})
        body = post.call_args.kwargs["json"]
        self.assertEqual(body["to"], [{"email": "klients@inbox.lv"}])
        self.assertEqual(body["replyTo"], {"email": "salons@inbox.lv"})
        self.assertEqual(self.client.http.headers["api-key"], "xkeysib-test")

    def test_rejected_reports_error(self):
        response = http_response(400, {"message": "invalid email"})
        with patch.object(self.client.http, "post", return_value=response):
            result = self.client.send_email("klients@inbox.lv", "Hi", "<p>Hi</p>")

        self.assertFalse(result["success"])
        self.assertIsNone(result["message_id"])
        self.assertIn("400 - invalid email", result["error"])

    def test_network_error_does_not_raise(self):
        with patch.object(self.client.http, "post", side_effect=requests.exceptions.ConnectionError("down")):
            result = self.client.send_email("klients@inbox.lv", "Hi", "<p>Hi</p>")

        self.assertFalse(result["success"])
        self.assertIn("Network error", result["error"])


class TestMapboxGeocoder(unittest.TestCase):
    def setUp(self):
        self.geocoder = MapboxGeocoder("pk.test")

    @patch("utils.geocoding.requests.get")
    def test_first_feature_center(self, get):
        get.return_value = http_response(200, {"features": [{"center": [24.1052, 56.9496]}]})

        self.assertEqual(self.geocoder.geocode("Brivibas iela 1, Riga"), {"latitude": 56.9496, "longitude": 24.1052})
        self.assertEqual(get.call_args.kwargs["params"]["country"], "LV")

    @patch("utils.geocoding.requests.get")
    def test_no_features(self, get):
        get.return_value = http_response(200, {"features": []})
        self.assertIsNone(self.geocoder.geocode("nowhere"))

    @patch("utils.geocoding.requests.get")
    def test_provider_error(self, get):
        get.return_value = http_response(401, {"message": "Not Authorized"}, text="Not Authorized")
        with self.assertRaises(GeocodingError):
            self.geocoder.geocode("Riga")


if __name__ == "__main__":
    unittest.main()
