import json
import logging

from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt, ensure_csrf_cookie
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import services
from .decorators import api_login_required
from .exceptions import PaymentSessionError, PurchaseError
from .konnect import get_client
from .serializers import course_to_dict, purchase_to_dict

logger = logging.getLogger(__name__)


def _error(message: str, status: int, **extra) -> JsonResponse:
    return JsonResponse({"message": message, **extra}, status=status)


@require_POST
@api_login_required
def create_checkout_session(request):
    try:
        payload = json.loads(request.body or b"{}")
    except ValueError:
        return _error("Invalid JSON body", 400)
    course_id = payload.get("courseId") if isinstance(payload, dict) else None

    try:
        url = services.start_checkout(request.user.id, course_id, get_client())
    except PaymentSessionError as e:
        return _error(e.message, e.status_code, success=False)
    except PurchaseError as e:
        return _error(e.message, e.status_code)
    except Exception:
        logger.exception(f"Error creating Konnect payment for user {request.user.id}, course {course_id}")
        return _error("Internal server error", 500)

    return JsonResponse({"success": True, "url": url})


@csrf_exempt
@require_http_methods(["GET", "POST"])
def konnect_webhook(request):
    payment_ref = request.GET.get("payment_ref")
    try:
        services.handle_payment_notification(payment_ref, get_client())
    except PurchaseError as e:
        return _error(e.message, e.status_code)
    except Exception:
        logger.exception(f"Error handling Konnect webhook for payment {payment_ref}")
        return _error("Internal server error", 500)
    return HttpResponse(status=200)


@require_GET
@ensure_csrf_cookie
@api_login_required
def course_detail_with_purchase_status(request, course_id: int):
    try:
        result = services.get_course_detail_with_status(course_id, request.user)
    except PurchaseError as e:
        return _error(e.message, e.status_code)
    except Exception:
        logger.exception(f"Error loading course {course_id}")
        return _error("Internal server error", 500)

    return JsonResponse({
        "course": course_to_dict(result["course"], expand=True),
        "purchased": result["purchased"],
    })


@require_GET
def all_purchased_courses(request):
    try:
        purchases = services.get_completed_purchases()
    except Exception:
        logger.exception("Error listing purchased courses")
        return _error("Internal server error", 500)
    return JsonResponse({"purchasedCourse": [purchase_to_dict(p) for p in purchases]})
