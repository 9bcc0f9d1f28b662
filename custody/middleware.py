from custody.services.connection import get_gateway
from custody.services.fallback import SAMPLE_DATA_LABEL


class FallbackModeMiddleware:
    """Label every response served while the store is bypassed."""
    HEADER = 'X-Data-Source'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        if get_gateway().fallback_mode:
            response[self.HEADER] = SAMPLE_DATA_LABEL
        return response
