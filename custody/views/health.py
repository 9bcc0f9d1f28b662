from django.conf import settings
from django.http import JsonResponse

from custody.services.connection import get_gateway


def healthz(request):
    """Reachability of the store plus the fallback flag.

    Answers 200 while the store is reachable or sample data is being served.
    """
    gateway = get_gateway()
    reachable = gateway.is_reachable()
    snapshot = gateway.status()
    ok = reachable or snapshot.fallback_mode
    return JsonResponse(
        {'ok': ok, 'database': snapshot.as_dict(include_error=settings.DEBUG)},
        status=200 if ok else 503,
    )
