from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase, override_settings

from .exceptions import KonnectAPIError
from .konnect import KonnectClient, KonnectConfig, from_millimes, to_millimes


def make_response(status_code=200, data=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = data if data is not None else {}
    return response


class MillimesConversionTests(SimpleTestCase):

    def test_to_millimes(self):
        self.assertEqual(to_millimes(50), 50000)
        self.assertEqual(to_millimes(Decimal("49.900")), 49900)
        self.assertEqual(to_millimes("0.5"), 500)

    def test_from_millimes(self):
        self.assertEqual(from_millimes(75000), Decimal("75"))
        self.assertEqual(from_millimes(49900), Decimal("49.9"))


class KonnectConfigTests(SimpleTestCase):

    @override_settings(
        KONNECT_API_KEY="key",
        KONNECT_BASE_URL="https://api.konnect.network/api/v2/",
        KONNECT_RECEIVER_WALLET_ID="wallet",
        KONNECT_CURRENCY="TND",
        KONNECT_LIFESPAN_MINUTES=30,
        KONNECT_TIMEOUT=10.0,
        BASE_URL="https://backend.test/",
        FRONTEND_URL="https://front.test/",
    )
    def test_from_settings_strips_trailing_slashes(self):
        config = KonnectConfig.from_settings()
        self.assertEqual(config.base_url, "https://api.konnect.network/api/v2")
        self.assertEqual(config.site_base_url, "https://backend.test")
        self.assertEqual(config.frontend_url, "https://front.test")
        self.assertEqual(config.receiver_wallet_id, "wallet")
        self.assertEqual(config.timeout, 10.0)


@patch("purchases.konnect.requests.request")
class KonnectClientTests(SimpleTestCase):

    def setUp(self):
        self.konnect = KonnectClient(KonnectConfig(
            api_key="secret",
            base_url="https://konnect.test",
            receiver_wallet_id="wallet",
            currency="TND",
            lifespan_minutes=30,
            timeout=5,
            site_base_url="https://backend.test",
            frontend_url="https://front.test",
        ))

    def test_init_payment_posts_with_api_key(self, mock_request):
        mock_request.return_value = make_response(data={"payUrl": "https://pay", "paymentRef": "ref"})

        data = self.konnect.init_payment({"amount": 50000})

        self.assertEqual(data, {"payUrl": "https://pay", "paymentRef": "ref"})
        mock_request.assert_called_once_with(
            "POST",
            "https://konnect.test/payments/init-payment",
            json={"amount": 50000},
            headers={"x-api-key": "secret", "Content-Type": "application/json"},
            timeout=5,
        )

    def test_get_payment_returns_payment_object(self, mock_request):
        mock_request.return_value = make_response(
            data={"payment": {"status": "completed", "amount": 50000, "orderId": "7"}}
        )

        payment = self.konnect.get_payment("ref-1")

        self.assertEqual(payment["status"], "completed")
        self.assertEqual(payment["orderId"], "7")
        self.assertEqual(mock_request.call_args[0], ("GET", "https://konnect.test/payments/ref-1"))

    def test_get_payment_escapes_reference(self, mock_request):
        mock_request.return_value = make_response(data={"payment": {}})

        self.konnect.get_payment("../wallets/x?y=1#z")

        self.assertEqual(
            mock_request.call_args[0][1],
            "https://konnect.test/payments/..%2Fwallets%2Fx%3Fy%3D1%23z",
        )

    def test_get_payment_without_payment_key(self, mock_request):
        mock_request.return_value = make_response(data={})
        self.assertEqual(self.konnect.get_payment("ref-1"), {})

    def test_http_error_raises(self, mock_request):
        mock_request.return_value = make_response(status_code=404, data={"errors": ["not found"]})

        with self.assertRaises(KonnectAPIError) as ctx:
            self.konnect.get_payment("missing")

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.response_data, {"errors": ["not found"]})

    def test_network_error_raises(self, mock_request):
        mock_request.side_effect = requests.exceptions.ConnectionError("down")

        with self.assertRaises(KonnectAPIError):
            self.konnect.init_payment({})

    def test_non_json_body(self, mock_request):
        response = make_response(status_code=502)
        response.json.side_effect = ValueError("no json")
        response.text = "Bad Gateway"
        mock_request.return_value = response

        with self.assertRaises(KonnectAPIError) as ctx:
            self.konnect.init_payment({})

        self.assertEqual(ctx.exception.response_data, {"raw_response": "Bad Gateway"})
