import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from flights.providers import get_flight_provider
from flights.providers.base import ProviderError, UpstreamSearchError
from flights.serializers import FlightSearchSerializer

logger = logging.getLogger(__name__)


class HealthView(APIView):
    def get(self, request):
        return Response({"status": "ok"})


class FlightSearchView(APIView):
    http_method_names = ["post"]

    def http_method_not_allowed(self, request, *args, **kwargs):
        return Response({"error": "Method not allowed"}, status=status.HTTP_405_METHOD_NOT_ALLOWED)

    def post(self, request):
        serializer = FlightSearchSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "Invalid search request.", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        params = serializer.validated_data
        search_params = {
            **params,
            "departDate": params["departDate"].isoformat(),
            "returnDate": params["returnDate"].isoformat() if params.get("returnDate") else None,
        }

        try:
            provider = get_flight_provider()
            result = provider.search_flights(search_params)
        except UpstreamSearchError as exc:
            return Response({"error": exc.body}, status=exc.status_code)
        except ProviderError as exc:
            logger.warning("Flight search failed: %s", exc, extra={"status_code": exc.status_code})
            return Response({"error": str(exc)}, status=exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR)
        except Exception as exc:
            logger.exception("Unexpected flight search failure.")
            return Response({"error": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(result)
