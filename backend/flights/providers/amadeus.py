import logging

import requests
from django.conf import settings

from flights.providers.base import FlightProvider, ProviderError, UpstreamSearchError
from flights.services.filters import filter_by_max_stops
from flights.services.normalize import normalize_flight_offers

logger = logging.getLogger(__name__)

SEARCH_PATH = "/v2/shopping/flight-offers"
SEARCH_CURRENCY = "USD"
SEARCH_MAX_RESULTS = 50


def build_search_query(params: dict) -> dict:
    query = {
        "originLocationCode": params["origin"],
        "destinationLocationCode": params["destination"],
        "departureDate": params["departDate"],
    }
    if params.get("returnDate"):
        query["returnDate"] = params["returnDate"]
    query["adults"] = str(params.get("adults") or 1)
    query["travelClass"] = params.get("travelClass") or "ECONOMY"
    query["currencyCode"] = SEARCH_CURRENCY
    query["max"] = str(SEARCH_MAX_RESULTS)

    # Only non-stop is expressible upstream; other stop limits are applied after normalization.
    if params.get("maxStops") == 0:
        query["nonStop"] = "true"
    return query


class AmadeusProvider(FlightProvider):
    name = "amadeus"

    def __init__(self, token_cache, base_url=None, timeout=None):
        self.token_cache = token_cache
        base_url = base_url or getattr(settings, "AMADEUS_BASE_URL", "https://test.api.amadeus.com")
        self.search_url = base_url.rstrip("/") + SEARCH_PATH
        self.timeout = timeout or getattr(settings, "AMADEUS_TIMEOUT_SECONDS", 25)

    def search_flights(self, params: dict) -> dict:
        token = self.token_cache.get_access_token()
        raw = self._request_offers(build_search_query(params), token)

        normalized = normalize_flight_offers(raw)
        offers = filter_by_max_stops(normalized["offers"], params.get("maxStops"))
        logger.info(
            "Amadeus search complete",
            extra={
                "origin": params["origin"],
                "destination": params["destination"],
                "upstream_count": normalized["meta"]["count"],
                "returned_count": len(offers),
            },
        )
        return {"offers": offers, "meta": normalized["meta"]}

    def _request_offers(self, query: dict, token: str) -> dict:
        try:
            response = requests.get(
                self.search_url,
                params=query,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Amadeus search request failed.")
            raise ProviderError(
                "Amadeus search request failed.",
                status_code=502,
                details={"error": str(exc)},
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "Amadeus search error response",
                extra={"status_code": response.status_code},
            )
            raise UpstreamSearchError(
                "Amadeus search returned an error.",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError("Amadeus response was not valid JSON.") from exc
