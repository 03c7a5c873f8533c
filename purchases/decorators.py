from functools import wraps

from django.http import JsonResponse


def api_login_required(view_func):
    """Like ``login_required`` but answers 401 JSON instead of redirecting."""
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"message": "User not authenticated"}, status=401)
        return view_func(request, *args, **kwargs)
    return _wrapped_view
