from unittest.mock import Mock, patch

from django.test import SimpleTestCase, override_settings

from flights.providers import get_token_cache
from flights.providers.auth import AccessTokenCache
from flights.providers.base import ConfigurationError, UpstreamAuthError
from flights.services.filters import filter_by_max_stops
from flights.services.normalize import normalize_flight_offers, parse_duration_to_minutes

AMADEUS_SETTINGS = {
    "FLIGHTS_PROVIDER": "amadeus",
    "AMADEUS_BASE_URL": "https://amadeus.example.test",
    "AMADEUS_CLIENT_ID": "client-id",
    "AMADEUS_CLIENT_SECRET": "client-secret",
}


def _segment(origin, destination, carrier):
    return {
        "departure": {"iataCode": origin, "at": "2025-06-01T08:00:00"},
        "arrival": {"iataCode": destination, "at": "2025-06-01T10:00:00"},
        "carrierCode": carrier,
        "numberOfStops": 0,
    }


def _raw_response():
    return {
        "warnings": [{"code": 12, "title": "Partial results"}],
        "data": [
            {
                "id": "1",
                "price": {"total": "420.50", "currency": "USD"},
                "itineraries": [
                    {"duration": "PT5H30M", "segments": [_segment("JFK", "ORD", "AA"), _segment("ORD", "LAX", "UA")]},
                    {"duration": "PT6H", "segments": [_segment("LAX", "DEN", "UA"), _segment("DEN", "JFK", "AA")]},
                ],
            },
            {
                "id": "2",
                "price": {"total": "199.00"},
                "itineraries": [{"duration": "PT6H15M", "segments": [_segment("JFK", "LAX", "B6")]}],
            },
            {"price": {}, "itineraries": [{"duration": "bogus", "segments": [{}]}]},
        ],
        "dictionaries": {"carriers": {"AA": "AMERICAN AIRLINES", "UA": "UNITED AIRLINES"}},
    }


def _offers_with_stops(*stops):
    return [{"id": str(i), "metrics": {"totalStops": s}} for i, s in enumerate(stops)]


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


def _token_response(token="token-1", expires_in=900):
    return _response(payload={"access_token": token, "expires_in": expires_in, "token_type": "Bearer"})


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class DurationParsingTests(SimpleTestCase):
    def test_hours_and_minutes(self):
        self.assertEqual(parse_duration_to_minutes("PT2H30M"), 150)
        self.assertEqual(parse_duration_to_minutes("PT45M"), 45)
        self.assertEqual(parse_duration_to_minutes("PT3H"), 180)

    def test_unparseable_values_count_as_zero(self):
        for value in ("", None, "2 hours", "P1D", 90):
            self.assertEqual(parse_duration_to_minutes(value), 0)

    def test_duration_found_after_leading_text(self):
        self.assertEqual(parse_duration_to_minutes("XPT2H"), 120)
        self.assertEqual(parse_duration_to_minutes("duration=PT1H5M"), 65)


class NormalizeFlightOffersTests(SimpleTestCase):
    def test_keeps_every_offer_in_upstream_order(self):
        result = normalize_flight_offers(_raw_response())

        self.assertEqual(len(result["offers"]), 3)
        self.assertEqual(result["meta"]["count"], 3)
        self.assertEqual([o["meta"]["rankIndex"] for o in result["offers"]], [0, 1, 2])
        self.assertEqual(result["meta"]["source"], "amadeus")
        self.assertEqual(result["meta"]["warnings"], [{"code": 12, "title": "Partial results"}])

    def test_round_trip_metrics(self):
        offer = normalize_flight_offers(_raw_response())["offers"][0]

        self.assertEqual(offer["id"], "1")
        self.assertEqual(offer["carriers"], ["AMERICAN AIRLINES", "UNITED AIRLINES"])
        self.assertEqual(offer["price"], {"total": 420.5, "currency": "USD"})
        self.assertEqual(offer["metrics"], {"totalMinutes": 690, "totalStops": 2, "stopIatas": ["ORD", "DEN"]})
        self.assertEqual(offer["itineraries"][0]["duration"], "PT5H30M")
        self.assertEqual(offer["itineraries"][0]["segments"][0], _segment("JFK", "ORD", "AA"))

    def test_unknown_carrier_and_currency_fall_back(self):
        offer = normalize_flight_offers(_raw_response())["offers"][1]

        self.assertEqual(offer["carriers"], ["B6"])
        self.assertEqual(offer["price"], {"total": 199.0, "currency": "USD"})
        self.assertEqual(offer["metrics"]["totalStops"], 0)
        self.assertEqual(offer["metrics"]["stopIatas"], [])

    def test_offer_missing_fields_degrades(self):
        offer = normalize_flight_offers(_raw_response())["offers"][2]

        self.assertEqual(offer["id"], "2")
        self.assertEqual(offer["carriers"], ["Airline"])
        self.assertEqual(offer["price"], {"total": 0.0, "currency": "USD"})
        self.assertEqual(offer["metrics"], {"totalMinutes": 0, "totalStops": 0, "stopIatas": []})
        segment = offer["itineraries"][0]["segments"][0]
        self.assertIsNone(segment["departure"]["iataCode"])
        self.assertIsNone(segment["carrierCode"])

    def test_response_level_currency_comes_from_first_offer(self):
        raw = {
            "data": [
                {"id": "a", "price": {"total": "10", "currency": "EUR"}},
                {"id": "b", "price": {"total": "12"}},
            ]
        }
        offers = normalize_flight_offers(raw)["offers"]
        self.assertEqual([o["price"]["currency"] for o in offers], ["EUR", "EUR"])

    def test_non_string_carrier_codes_are_ignored(self):
        raw = {
            "data": [
                {
                    "id": "1",
                    "itineraries": [
                        {"segments": [{"carrierCode": ["AA"]}, {"carrierCode": {"code": "UA"}}, {"carrierCode": "B6"}]}
                    ],
                },
                {"id": "2", "itineraries": [{"segments": [{"carrierCode": ["AA"]}]}]},
            ],
            "dictionaries": {"carriers": {"B6": "JETBLUE AIRWAYS"}},
        }
        offers = normalize_flight_offers(raw)["offers"]

        self.assertEqual(offers[0]["carriers"], ["JETBLUE AIRWAYS"])
        self.assertEqual(offers[0]["metrics"]["totalStops"], 2)
        self.assertEqual(offers[1]["carriers"], ["Airline"])

    def test_price_totals_are_parsed_as_numbers(self):
        for total, expected in [
            ("-12.50", 0.0),
            (-12.5, 0.0),
            ("1e3", 1000.0),
            (" 1,234.50 ", 1234.5),
            ("12.3.4", 0.0),
            ("free", 0.0),
            ("nan", 0.0),
            ("inf", 0.0),
            (["10"], 0.0),
            (77, 77.0),
        ]:
            raw = {"data": [{"id": "1", "price": {"total": total, "currency": "USD"}}]}
            offer = normalize_flight_offers(raw)["offers"][0]
            self.assertEqual(offer["price"]["total"], expected, total)

    def test_empty_or_malformed_payloads(self):
        for raw in ({}, None, [], {"data": "nope", "dictionaries": []}):
            result = normalize_flight_offers(raw)
            self.assertEqual(result["offers"], [])
            self.assertEqual(result["meta"], {"count": 0, "warnings": [], "source": "amadeus"})

    def test_stop_count_invariant(self):
        raw = _raw_response()
        for raw_offer, offer in zip(raw["data"], normalize_flight_offers(raw)["offers"]):
            expected = sum(max(0, len(it.get("segments", [])) - 1) for it in raw_offer.get("itineraries", []))
            self.assertEqual(offer["metrics"]["totalStops"], expected)
            self.assertGreaterEqual(len(offer["carriers"]), 1)

    def test_does_not_mutate_input(self):
        raw = _raw_response()
        normalize_flight_offers(raw)
        self.assertEqual(raw, _raw_response())


class StopFilterTests(SimpleTestCase):
    def test_at_most_one_stop(self):
        offers = _offers_with_stops(0, 1, 2, 3)
        self.assertEqual([o["metrics"]["totalStops"] for o in filter_by_max_stops(offers, 1)], [0, 1])

    def test_two_or_more_stops(self):
        offers = _offers_with_stops(0, 1, 2, 3)
        self.assertEqual([o["metrics"]["totalStops"] for o in filter_by_max_stops(offers, 2)], [2, 3])

    def test_none_and_zero_keep_everything(self):
        offers = _offers_with_stops(0, 1, 2, 3)
        self.assertEqual(filter_by_max_stops(offers, None), offers)
        self.assertEqual(filter_by_max_stops(offers, 0), offers)


class AccessTokenCacheTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.token_cache = AccessTokenCache(
            "client-id", "client-secret", "https://amadeus.example.test/", clock=self.clock
        )

    @patch("flights.providers.auth.requests.post")
    def test_token_is_reused_until_safety_margin(self, mock_post):
        mock_post.side_effect = [_token_response("token-1"), _token_response("token-2")]

        self.assertEqual(self.token_cache.get_access_token(), "token-1")
        self.clock.now += 884
        self.assertEqual(self.token_cache.get_access_token(), "token-1")
        mock_post.assert_called_once()

        self.clock.now += 1
        self.assertEqual(self.token_cache.get_access_token(), "token-2")
        self.assertEqual(mock_post.call_count, 2)

    @patch("flights.providers.auth.requests.post")
    def test_token_request_is_client_credentials_form(self, mock_post):
        mock_post.return_value = _token_response()

        self.token_cache.get_access_token()

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://amadeus.example.test/v1/security/oauth2/token")
        self.assertEqual(
            kwargs["data"],
            {"grant_type": "client_credentials", "client_id": "client-id", "client_secret": "client-secret"},
        )
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/x-www-form-urlencoded")

    @patch("flights.providers.auth.requests.post")
    def test_missing_expires_in_defaults_to_900_seconds(self, mock_post):
        mock_post.return_value = _token_response(expires_in="soon")

        self.token_cache.get_access_token()

        self.assertEqual(self.token_cache._token.expires_at_epoch_ms, 1_900_000)

    @patch("flights.providers.auth.requests.post")
    def test_missing_credentials_fail_before_network(self, mock_post):
        token_cache = AccessTokenCache("", "client-secret", "https://amadeus.example.test")

        with self.assertRaises(ConfigurationError):
            token_cache.get_access_token()
        mock_post.assert_not_called()

    @patch("flights.providers.auth.requests.post")
    def test_rejected_token_request_raises(self, mock_post):
        mock_post.return_value = _response(status_code=401, text='{"error":"invalid_client"}')

        with self.assertRaises(UpstreamAuthError) as ctx:
            self.token_cache.get_access_token()

        self.assertEqual(ctx.exception.upstream_status, 401)
        self.assertEqual(ctx.exception.body, '{"error":"invalid_client"}')
        self.assertIsNone(self.token_cache._token)


@override_settings(**AMADEUS_SETTINGS)
class FlightSearchViewTests(SimpleTestCase):
    url = "/api/flights/search"

    def setUp(self):
        get_token_cache.cache_clear()

    def _post(self, body):
        return self.client.post(self.url, body, content_type="application/json")

    @patch("flights.providers.amadeus.requests.get")
    @patch("flights.providers.auth.requests.post")
    def test_search_normalizes_request_and_response(self, mock_post, mock_get):
        mock_post.return_value = _token_response("abc")
        mock_get.return_value = _response(payload=_raw_response())

        response = self._post({"origin": " jfk ", "destination": "lax", "departDate": "2025-06-01"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(len(body["offers"]), 3)
        self.assertEqual(body["meta"]["count"], 3)

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], "https://amadeus.example.test/v2/shopping/flight-offers")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer abc")
        self.assertEqual(
            kwargs["params"],
            {
                "originLocationCode": "JFK",
                "destinationLocationCode": "LAX",
                "departureDate": "2025-06-01",
                "adults": "1",
                "travelClass": "ECONOMY",
                "currencyCode": "USD",
                "max": "50",
            },
        )

    @patch("flights.providers.amadeus.requests.get")
    @patch("flights.providers.auth.requests.post")
    def test_non_stop_is_requested_upstream(self, mock_post, mock_get):
        mock_post.return_value = _token_response()
        mock_get.return_value = _response(payload=_raw_response())

        response = self._post(
            {
                "origin": "JFK",
                "destination": "LAX",
                "departDate": "2025-06-01",
                "returnDate": "2025-06-08",
                "adults": 12,
                "travelClass": "BUSINESS",
                "maxStops": 0,
            }
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["offers"]), 3)
        params = mock_get.call_args.kwargs["params"]
        self.assertEqual(params["nonStop"], "true")
        self.assertEqual(params["returnDate"], "2025-06-08")
        self.assertEqual(params["adults"], "9")
        self.assertEqual(params["travelClass"], "BUSINESS")

    @patch("flights.providers.amadeus.requests.get")
    @patch("flights.providers.auth.requests.post")
    def test_stop_filter_keeps_unfiltered_count(self, mock_post, mock_get):
        mock_post.return_value = _token_response()
        mock_get.return_value = _response(payload=_raw_response())

        response = self._post({"origin": "JFK", "destination": "LAX", "departDate": "2025-06-01", "maxStops": 2})

        body = response.json()
        self.assertEqual([o["id"] for o in body["offers"]], ["1"])
        self.assertEqual(body["offers"][0]["meta"]["rankIndex"], 0)
        self.assertEqual(body["meta"]["count"], 3)
        self.assertNotIn("nonStop", mock_get.call_args.kwargs["params"])

    @patch("flights.providers.amadeus.requests.get")
    @patch("flights.providers.auth.requests.post")
    def test_token_is_shared_across_requests(self, mock_post, mock_get):
        mock_post.return_value = _token_response()
        mock_get.return_value = _response(payload={"data": []})

        body = {"origin": "JFK", "destination": "LAX", "departDate": "2025-06-01"}
        self._post(body)
        self._post(body)

        mock_post.assert_called_once()
        self.assertEqual(mock_get.call_count, 2)

    @patch("flights.providers.auth.requests.post")
    def test_missing_fields_return_400_without_network(self, mock_post):
        response = self._post({"origin": "  ", "destination": "LAX"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("origin", response.json()["details"])
        self.assertIn("departDate", response.json()["details"])
        mock_post.assert_not_called()

    @patch("flights.providers.auth.requests.post")
    def test_invalid_optional_fields_report_their_own_errors(self, mock_post):
        response = self._post(
            {"origin": "JFK", "destination": "LAX", "departDate": "2025-06-01", "travelClass": "COACH", "maxStops": 5}
        )

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["error"], "Invalid search request.")
        self.assertEqual(set(body["details"]), {"travelClass", "maxStops"})
        mock_post.assert_not_called()

    def test_non_post_methods_are_rejected(self):
        for method in (self.client.get, self.client.put, self.client.delete):
            response = method(self.url)
            self.assertEqual(response.status_code, 405)
            self.assertEqual(response.json(), {"error": "Method not allowed"})

    @patch("flights.providers.amadeus.requests.get")
    @patch("flights.providers.auth.requests.post")
    def test_upstream_search_error_is_passed_through(self, mock_post, mock_get):
        mock_post.return_value = _token_response()
        mock_get.return_value = _response(status_code=429, text="Too many requests")

        response = self._post({"origin": "JFK", "destination": "LAX", "departDate": "2025-06-01"})

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json(), {"error": "Too many requests"})

    @patch("flights.providers.amadeus.requests.get")
    @patch("flights.providers.auth.requests.post")
    def test_token_error_returns_500(self, mock_post, mock_get):
        mock_post.return_value = _response(status_code=401, text="invalid_client")

        response = self._post({"origin": "JFK", "destination": "LAX", "departDate": "2025-06-01"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Token error: 401 invalid_client"})
        mock_get.assert_not_called()

    @override_settings(AMADEUS_CLIENT_ID="")
    @patch("flights.providers.auth.requests.post")
    def test_missing_credentials_return_500(self, mock_post):
        response = self._post({"origin": "JFK", "destination": "LAX", "departDate": "2025-06-01"})

        self.assertEqual(response.status_code, 500)
        self.assertIn("AMADEUS_CLIENT_ID", response.json()["error"])
        mock_post.assert_not_called()


class HealthViewTests(SimpleTestCase):
    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})
