import logging
from typing import Any, Dict, Optional

from django.contrib.auth.models import User
from django.db import transaction

from .exceptions import (
    CourseNotFound,
    MissingParameter,
    PaymentSessionError,
    PurchaseNotFound,
)
from .konnect import KonnectClient, KonnectConfig, from_millimes, to_millimes
from .models import Course, CoursePurchase, Lecture, Profile

logger = logging.getLogger(__name__)

ACCEPTED_PAYMENT_METHODS = ["wallet", "bank_card", "e-DINAR"]


def _parse_id(value) -> Optional[int]:
    """Integer id from a JSON number or digit string; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _get_course(course_id) -> Course:
    pk = _parse_id(course_id)
    if pk is None:
        raise CourseNotFound()
    try:
        return Course.objects.get(pk=pk, is_active=True)
    except Course.DoesNotExist:
        raise CourseNotFound()


def build_payment_request(
    course: Course, purchase: CoursePurchase, user: Optional[User], config: KonnectConfig
) -> Dict[str, Any]:
    """Konnect init-payment body for a pending purchase of ``course``."""
    payment_data = {
        "receiverWalletId": config.receiver_wallet_id,
        "token": config.currency,
        "amount": to_millimes(course.price),
        "type": "immediate",
        "description": f"Payment for course: {course.title}",
        "acceptedPaymentMethods": list(ACCEPTED_PAYMENT_METHODS),
        "lifespan": config.lifespan_minutes,
        "checkoutForm": True,
        "addPaymentFeesToAmount": False,
        "orderId": str(purchase.id),
        "webhook": f"{config.site_base_url}/api/purchase/webhook/",
        "silentWebhook": True,
        "successUrl": f"{config.frontend_url}/course-progress/{course.id}",
        "failUrl": f"{config.frontend_url}/course-detail/{course.id}",
        "theme": "light",
    }
    if user is not None:
        profile = Profile.objects.filter(user=user).first()
        payment_data.update({
            "firstName": user.first_name or "",
            "lastName": user.last_name or "",
            "email": user.email or "",
            "phoneNumber": profile.phone_number if profile else "",
        })
    return payment_data


def start_checkout(user_id: int, course_id, client: KonnectClient) -> str:
    """Create a pending purchase and open a Konnect payment session.

    Returns the Konnect payment URL the buyer should be redirected to.
    """
    course = _get_course(course_id)

    purchase = CoursePurchase.objects.create(
        course=course,
        user_id=user_id,
        amount=course.price,
        status=CoursePurchase.STATUS_PENDING,
    )
    logger.info(f"Created pending purchase {purchase.id} for user {user_id}, course {course.id}")

    user = User.objects.filter(pk=user_id).first()
    payment_data = build_payment_request(course, purchase, user, client.config)

    response = client.init_payment(payment_data)
    pay_url = response.get("payUrl")
    payment_ref = response.get("paymentRef")
    if not pay_url:
        logger.error(f"Konnect returned no payment URL for purchase {purchase.id}")
        raise PaymentSessionError()
    if not payment_ref:
        logger.warning(f"Konnect returned no paymentRef for purchase {purchase.id}")

    purchase.payment_id = payment_ref or ""
    purchase.save(update_fields=["payment_id", "updated_at"])
    return pay_url


def handle_payment_notification(payment_ref: Optional[str], client: KonnectClient) -> CoursePurchase:
    """Sync a purchase with the payment status Konnect reports for ``payment_ref``."""
    if not payment_ref:
        raise MissingParameter("Missing payment reference")

    payment = client.get_payment(payment_ref)
    order_id = str(payment.get("orderId") or "")

    purchase = None
    if order_id.isdigit():
        purchase = CoursePurchase.objects.select_related("course", "user").filter(pk=order_id).first()
    if purchase is None:
        raise PurchaseNotFound()

    amount = payment.get("amount")
    if amount:
        purchase.amount = from_millimes(amount)
        purchase.save(update_fields=["amount", "updated_at"])

    if payment.get("status") == CoursePurchase.STATUS_COMPLETED:
        complete_purchase(purchase.id)
        purchase.refresh_from_db()
    else:
        logger.info(
            f"Payment {payment_ref} for purchase {purchase.id} is {payment.get('status')!r}, not completing"
        )
    return purchase


def complete_purchase(purchase_id: int) -> bool:
    """Mark a purchase completed and unlock the course for the buyer.

    All effects are applied in one transaction and only once; returns False
    when the purchase was already completed.
    """
    with transaction.atomic():
        purchase = (
            CoursePurchase.objects.select_for_update()
            .select_related("course", "user")
            .get(pk=purchase_id)
        )
        if purchase.is_completed:
            logger.info(f"Duplicate completion for purchase {purchase.id} - already completed")
            return False

        course = purchase.course
        user = purchase.user

        purchase.status = CoursePurchase.STATUS_COMPLETED
        Lecture.objects.filter(course=course).update(is_preview_free=True)
        purchase.save(update_fields=["status", "updated_at"])

        profile, _ = Profile.objects.get_or_create(user=user)
        profile.enrolled_courses.add(course)
        course.enrolled_students.add(user)

    logger.info(f"Purchase {purchase.id} completed: user {user.id} enrolled in course {course.id}")
    return True


def get_course_detail_with_status(course_id, user) -> Dict[str, Any]:
    pk = _parse_id(course_id)
    if pk is None:
        raise CourseNotFound("course not found!")
    try:
        course = (
            Course.objects.select_related("creator")
            .prefetch_related("lectures", "enrolled_students")
            .get(pk=pk)
        )
    except Course.DoesNotExist:
        raise CourseNotFound("course not found!")

    purchased = CoursePurchase.objects.filter(user=user, course=course).exists()
    return {"course": course, "purchased": purchased}


def get_completed_purchases():
    return list(
        CoursePurchase.objects.select_related("course")
        .prefetch_related("course__lectures")
        .filter(status=CoursePurchase.STATUS_COMPLETED)
        .order_by("id")
    )
