"""
Tests for the course purchase flow.

Tests cover:
- Checkout session creation against a mocked Konnect client
- Webhook completion, amount sync and duplicate notifications
- Course detail with purchase status and the completed purchases listing
"""
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.contrib.auth.models import User
from django.test import Client, TestCase
from django.urls import reverse

from .exceptions import KonnectAPIError
from .konnect import KonnectConfig
from .models import Course, CoursePurchase, Lecture, Profile
from . import services

TEST_CONFIG = KonnectConfig(
    api_key="test-key",
    base_url="https://konnect.test/api/v2",
    receiver_wallet_id="wallet-123",
    currency="TND",
    lifespan_minutes=30,
    timeout=5,
    site_base_url="https://backend.test",
    frontend_url="https://front.test",
)


def make_konnect_mock():
    konnect = MagicMock()
    konnect.config = TEST_CONFIG
    return konnect


class PurchaseTestMixin:

    def setUp(self):
        self.creator = User.objects.create_user(username="teacher", password="pw")
        self.user = User.objects.create_user(
            username="student",
            password="pw",
            first_name="Amira",
            last_name="Ben Ali",
            email="amira@example.com",
        )
        self.user.profile.phone_number = "+21620000000"
        self.user.profile.save()
        self.course = Course.objects.create(
            title="Full-Stack Django",
            description="End-to-end Django apps.",
            price=Decimal("50"),
            creator=self.creator,
        )
        self.lectures = [
            Lecture.objects.create(course=self.course, title=f"Part {n}", position=n)
            for n in range(1, 4)
        ]


class ProfileSignalTests(TestCase):

    def test_profile_created_on_user_creation(self):
        user = User.objects.create_user(username="newbie")
        self.assertTrue(Profile.objects.filter(user=user).exists())
        self.assertEqual(user.profile.phone_number, "")


class BuildPaymentRequestTests(PurchaseTestMixin, TestCase):

    def test_payload_fields(self):
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)
        data = services.build_payment_request(self.course, purchase, self.user, TEST_CONFIG)

        self.assertEqual(data["amount"], 50000)
        self.assertEqual(data["receiverWalletId"], "wallet-123")
        self.assertEqual(data["token"], "TND")
        self.assertEqual(data["type"], "immediate")
        self.assertEqual(data["lifespan"], 30)
        self.assertEqual(data["orderId"], str(purchase.id))
        self.assertEqual(data["description"], "Payment for course: Full-Stack Django")
        self.assertEqual(data["acceptedPaymentMethods"], ["wallet", "bank_card", "e-DINAR"])
        self.assertEqual(data["webhook"], "https://backend.test/api/purchase/webhook/")
        self.assertEqual(data["successUrl"], f"https://front.test/course-progress/{self.course.id}")
        self.assertEqual(data["failUrl"], f"https://front.test/course-detail/{self.course.id}")
        self.assertEqual(data["firstName"], "Amira")
        self.assertEqual(data["lastName"], "Ben Ali")
        self.assertEqual(data["email"], "amira@example.com")
        self.assertEqual(data["phoneNumber"], "+21620000000")

    def test_payload_without_user_has_no_contact_fields(self):
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)
        data = services.build_payment_request(self.course, purchase, None, TEST_CONFIG)
        for key in ("firstName", "lastName", "email", "phoneNumber"):
            self.assertNotIn(key, data)

    def test_blank_contact_fields_become_empty_strings(self):
        bare = User.objects.create_user(username="bare")
        purchase = CoursePurchase.objects.create(course=self.course, user=bare, amount=self.course.price)
        data = services.build_payment_request(self.course, purchase, bare, TEST_CONFIG)
        self.assertEqual(data["firstName"], "")
        self.assertEqual(data["email"], "")
        self.assertEqual(data["phoneNumber"], "")

    def test_fractional_price_in_millimes(self):
        self.course.price = Decimal("49.900")
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)
        data = services.build_payment_request(self.course, purchase, self.user, TEST_CONFIG)
        self.assertEqual(data["amount"], 49900)


@patch("purchases.views.get_client")
class CreateCheckoutSessionViewTests(PurchaseTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.url = reverse("purchases:create_checkout_session")
        self.client.force_login(self.user)

    def post_checkout(self, body):
        return self.client.post(self.url, data=json.dumps(body), content_type="application/json")

    def test_success_returns_pay_url_and_stores_reference(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.init_payment.return_value = {"payUrl": "https://pay.test/abc", "paymentRef": "ref-abc"}
        mock_get_client.return_value = konnect

        response = self.post_checkout({"courseId": self.course.id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "url": "https://pay.test/abc"})
        purchase = CoursePurchase.objects.get()
        self.assertEqual(purchase.status, CoursePurchase.STATUS_PENDING)
        self.assertEqual(purchase.payment_id, "ref-abc")
        self.assertEqual(purchase.amount, Decimal("50"))
        sent = konnect.init_payment.call_args[0][0]
        self.assertEqual(sent["amount"], 50000)
        self.assertEqual(sent["orderId"], str(purchase.id))

    def test_pending_purchase_exists_before_provider_call(self, mock_get_client):
        konnect = make_konnect_mock()
        seen = {}

        def init_payment(payment_data):
            seen["purchases"] = list(CoursePurchase.objects.values_list("status", flat=True))
            return {"payUrl": "https://pay.test/abc", "paymentRef": "ref-abc"}

        konnect.init_payment.side_effect = init_payment
        mock_get_client.return_value = konnect

        self.post_checkout({"courseId": self.course.id})

        self.assertEqual(seen["purchases"], [CoursePurchase.STATUS_PENDING])
        self.assertEqual(CoursePurchase.objects.count(), 1)

    def test_unknown_course_is_not_found(self, mock_get_client):
        mock_get_client.return_value = make_konnect_mock()

        response = self.post_checkout({"courseId": 99999})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Course not found!")
        self.assertFalse(CoursePurchase.objects.exists())
        mock_get_client.return_value.init_payment.assert_not_called()

    def test_missing_course_id_is_not_found(self, mock_get_client):
        mock_get_client.return_value = make_konnect_mock()
        response = self.post_checkout({})
        self.assertEqual(response.status_code, 404)

    def test_boolean_course_id_is_not_found(self, mock_get_client):
        mock_get_client.return_value = make_konnect_mock()

        response = self.post_checkout({"courseId": True})

        self.assertEqual(response.status_code, 404)
        self.assertFalse(CoursePurchase.objects.exists())
        mock_get_client.return_value.init_payment.assert_not_called()

    def test_float_course_id_is_not_found(self, mock_get_client):
        mock_get_client.return_value = make_konnect_mock()
        response = self.post_checkout({"courseId": self.course.id + 0.9})
        self.assertEqual(response.status_code, 404)
        self.assertFalse(CoursePurchase.objects.exists())

    def test_digit_string_course_id_is_accepted(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.init_payment.return_value = {"payUrl": "https://pay.test/abc", "paymentRef": "ref-abc"}
        mock_get_client.return_value = konnect

        response = self.post_checkout({"courseId": str(self.course.id)})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(CoursePurchase.objects.get().course, self.course)

    def test_inactive_course_is_not_found(self, mock_get_client):
        mock_get_client.return_value = make_konnect_mock()
        self.course.is_active = False
        self.course.save()

        response = self.post_checkout({"courseId": self.course.id})

        self.assertEqual(response.status_code, 404)
        self.assertFalse(CoursePurchase.objects.exists())

    def test_missing_payment_ref_still_returns_pay_url(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.init_payment.return_value = {"payUrl": "https://pay.test/abc"}
        mock_get_client.return_value = konnect

        response = self.post_checkout({"courseId": self.course.id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["url"], "https://pay.test/abc")
        self.assertEqual(CoursePurchase.objects.get().payment_id, "")

    def test_missing_pay_url_is_client_error(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.init_payment.return_value = {"errors": ["wallet not found"]}
        mock_get_client.return_value = konnect

        response = self.post_checkout({"courseId": self.course.id})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {"success": False, "message": "Error while creating payment session"},
        )
        self.assertEqual(CoursePurchase.objects.get().payment_id, "")

    def test_provider_failure_is_generic_server_error(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.init_payment.side_effect = KonnectAPIError("Konnect returned HTTP 502", status_code=502)
        mock_get_client.return_value = konnect

        response = self.post_checkout({"courseId": self.course.id})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"message": "Internal server error"})

    def test_invalid_json_is_bad_request(self, mock_get_client):
        response = self.client.post(self.url, data="not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)

    def test_requires_authentication(self, mock_get_client):
        self.client.logout()
        response = self.post_checkout({"courseId": self.course.id})
        self.assertEqual(response.status_code, 401)
        mock_get_client.assert_not_called()

    def test_get_not_allowed(self, mock_get_client):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 405)


@patch("purchases.views.get_client")
class KonnectWebhookViewTests(PurchaseTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.url = reverse("purchases:webhook")
        self.purchase = CoursePurchase.objects.create(
            course=self.course,
            user=self.user,
            amount=self.course.price,
            payment_id="ref-abc",
        )

    def konnect_reporting(self, status, amount=50000, order_id=None):
        konnect = make_konnect_mock()
        konnect.get_payment.return_value = {
            "status": status,
            "amount": amount,
            "orderId": str(order_id or self.purchase.id),
        }
        return konnect

    def assert_unlocked(self):
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.status, CoursePurchase.STATUS_COMPLETED)
        self.assertFalse(Lecture.objects.filter(course=self.course, is_preview_free=False).exists())
        self.assertTrue(self.user.profile.enrolled_courses.filter(pk=self.course.pk).exists())
        self.assertTrue(self.course.enrolled_students.filter(pk=self.user.pk).exists())

    def test_completed_payment_unlocks_course(self, mock_get_client):
        mock_get_client.return_value = self.konnect_reporting("completed")

        response = self.client.get(self.url, {"payment_ref": "ref-abc"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")
        mock_get_client.return_value.get_payment.assert_called_once_with("ref-abc")
        self.assert_unlocked()

    def test_post_notification_is_accepted(self, mock_get_client):
        mock_get_client.return_value = self.konnect_reporting("completed")
        response = self.client.post(f"{self.url}?payment_ref=ref-abc")
        self.assertEqual(response.status_code, 200)
        self.assert_unlocked()

    def test_amount_synced_from_millimes(self, mock_get_client):
        mock_get_client.return_value = self.konnect_reporting("completed", amount=75000)
        self.client.get(self.url, {"payment_ref": "ref-abc"})
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.amount, Decimal("75"))

    def test_non_completed_payment_only_syncs_amount(self, mock_get_client):
        mock_get_client.return_value = self.konnect_reporting("pending", amount=60000)

        response = self.client.get(self.url, {"payment_ref": "ref-abc"})

        self.assertEqual(response.status_code, 200)
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.amount, Decimal("60"))
        self.assertEqual(self.purchase.status, CoursePurchase.STATUS_PENDING)
        self.assertFalse(Lecture.objects.filter(is_preview_free=True).exists())
        self.assertFalse(self.course.enrolled_students.exists())
        self.assertFalse(self.user.profile.enrolled_courses.exists())

    def test_repeated_completion_is_idempotent(self, mock_get_client):
        mock_get_client.return_value = self.konnect_reporting("completed")

        self.client.get(self.url, {"payment_ref": "ref-abc"})
        response = self.client.get(self.url, {"payment_ref": "ref-abc"})

        self.assertEqual(response.status_code, 200)
        self.assert_unlocked()
        self.assertEqual(self.course.enrolled_students.count(), 1)
        self.assertEqual(self.user.profile.enrolled_courses.count(), 1)
        self.assertEqual(CoursePurchase.objects.count(), 1)

    def test_missing_payment_ref_is_bad_request(self, mock_get_client):
        mock_get_client.return_value = make_konnect_mock()

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Missing payment reference")
        mock_get_client.return_value.get_payment.assert_not_called()

    def test_unknown_order_is_not_found(self, mock_get_client):
        mock_get_client.return_value = self.konnect_reporting("completed", order_id=99999)

        response = self.client.get(self.url, {"payment_ref": "ref-abc"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Purchase not found")

    def test_non_numeric_order_is_not_found(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.get_payment.return_value = {"status": "completed", "amount": 50000, "orderId": "64f0c0ffee"}
        mock_get_client.return_value = konnect

        response = self.client.get(self.url, {"payment_ref": "ref-abc"})

        self.assertEqual(response.status_code, 404)

    def test_provider_failure_is_server_error(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.get_payment.side_effect = KonnectAPIError("Konnect request failed")
        mock_get_client.return_value = konnect

        response = self.client.get(self.url, {"payment_ref": "ref-abc"})

        self.assertEqual(response.status_code, 500)
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.status, CoursePurchase.STATUS_PENDING)


class CompletePurchaseTests(PurchaseTestMixin, TestCase):

    def test_second_completion_reports_duplicate(self):
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)
        self.assertTrue(services.complete_purchase(purchase.id))
        self.assertFalse(services.complete_purchase(purchase.id))

    def test_only_this_course_lectures_unlocked(self):
        other = Course.objects.create(title="Docker Basics", price=Decimal("30"))
        other_lecture = Lecture.objects.create(course=other, title="Intro")
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)

        services.complete_purchase(purchase.id)

        other_lecture.refresh_from_db()
        self.assertFalse(other_lecture.is_preview_free)
        self.assertEqual(Lecture.objects.filter(course=self.course, is_preview_free=True).count(), 3)

    def test_failure_part_way_leaves_purchase_untouched(self):
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)

        with patch.object(Profile.objects, "get_or_create", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                services.complete_purchase(purchase.id)

        purchase.refresh_from_db()
        self.assertEqual(purchase.status, CoursePurchase.STATUS_PENDING)
        self.assertFalse(Lecture.objects.filter(is_preview_free=True).exists())
        self.assertFalse(self.course.enrolled_students.exists())

    def test_completion_after_failure_applies_all_effects(self):
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)
        with patch.object(Profile.objects, "get_or_create", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                services.complete_purchase(purchase.id)

        self.assertTrue(services.complete_purchase(purchase.id))

        purchase.refresh_from_db()
        self.assertEqual(purchase.status, CoursePurchase.STATUS_COMPLETED)
        self.assertTrue(self.course.enrolled_students.filter(pk=self.user.pk).exists())

    def test_user_without_profile_gets_one(self):
        Profile.objects.filter(user=self.user).delete()
        purchase = CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)

        services.complete_purchase(purchase.id)

        self.assertTrue(Profile.objects.get(user=self.user).enrolled_courses.filter(pk=self.course.pk).exists())


class CourseDetailWithStatusViewTests(PurchaseTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client.force_login(self.user)

    def detail_url(self, course_id):
        return reverse("purchases:course_detail_with_status", kwargs={"course_id": course_id})

    def test_not_purchased(self):
        response = self.client.get(self.detail_url(self.course.id))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertFalse(data["purchased"])
        self.assertEqual(data["course"]["title"], "Full-Stack Django")
        self.assertEqual(data["course"]["creator"]["username"], "teacher")
        self.assertEqual([lec["title"] for lec in data["course"]["lectures"]], ["Part 1", "Part 2", "Part 3"])

    def test_pending_purchase_counts_as_purchased(self):
        CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)
        response = self.client.get(self.detail_url(self.course.id))
        self.assertTrue(response.json()["purchased"])

    def test_other_users_purchase_does_not_count(self):
        CoursePurchase.objects.create(course=self.course, user=self.creator, amount=self.course.price)
        response = self.client.get(self.detail_url(self.course.id))
        self.assertFalse(response.json()["purchased"])

    def test_unknown_course_is_not_found(self):
        response = self.client.get(self.detail_url(99999))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "course not found!")

    def test_lists_enrolled_students(self):
        self.course.enrolled_students.add(self.user)
        response = self.client.get(self.detail_url(self.course.id))
        self.assertEqual(response.json()["course"]["enrolledStudents"], [self.user.id])

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get(self.detail_url(self.course.id))
        self.assertEqual(response.status_code, 401)


@patch("purchases.views.get_client")
class CheckoutCsrfTests(PurchaseTestMixin, TestCase):
    """The frontend reads the CSRF cookie set by the course detail endpoint."""

    def setUp(self):
        super().setUp()
        self.csrf_client = Client(enforce_csrf_checks=True)
        self.csrf_client.force_login(self.user)
        self.url = reverse("purchases:create_checkout_session")
        self.body = json.dumps({"courseId": self.course.id})

    def test_checkout_without_token_is_forbidden(self, mock_get_client):
        response = self.csrf_client.post(self.url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 403)
        self.assertFalse(CoursePurchase.objects.exists())

    def test_checkout_with_token_from_course_detail(self, mock_get_client):
        konnect = make_konnect_mock()
        konnect.init_payment.return_value = {"payUrl": "https://pay.test/abc", "paymentRef": "ref-abc"}
        mock_get_client.return_value = konnect

        detail = self.csrf_client.get(
            reverse("purchases:course_detail_with_status", kwargs={"course_id": self.course.id})
        )
        token = detail.cookies["csrftoken"].value

        response = self.csrf_client.post(
            self.url,
            data=self.body,
            content_type="application/json",
            HTTP_X_CSRFTOKEN=token,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["url"], "https://pay.test/abc")


class AllPurchasedCoursesViewTests(PurchaseTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.url = reverse("purchases:purchased_courses")

    def test_empty_when_nothing_completed(self):
        CoursePurchase.objects.create(course=self.course, user=self.user, amount=self.course.price)

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"purchasedCourse": []})

    def test_lists_only_completed_purchases_with_course(self):
        completed = CoursePurchase.objects.create(
            course=self.course,
            user=self.user,
            amount=self.course.price,
            status=CoursePurchase.STATUS_COMPLETED,
        )
        CoursePurchase.objects.create(course=self.course, user=self.creator, amount=self.course.price)

        response = self.client.get(self.url)

        items = response.json()["purchasedCourse"]
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["id"], completed.id)
        self.assertEqual(items[0]["status"], "completed")
        self.assertEqual(items[0]["course"]["title"], "Full-Stack Django")
        self.assertEqual(len(items[0]["course"]["lectures"]), 3)
