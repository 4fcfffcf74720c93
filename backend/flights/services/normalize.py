import math
import re

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?")

SOURCE = "amadeus"
FALLBACK_CURRENCY = "USD"
FALLBACK_CARRIER = "Airline"


def parse_duration_to_minutes(value):
    # Unparseable durations count as 0.
    if not value or not isinstance(value, str):
        return 0
    match = DURATION_RE.search(value)
    if not match:
        return 0
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    return hours * 60 + minutes


def _as_dict(value):
    return value if isinstance(value, dict) else {}


def _as_list(value):
    return value if isinstance(value, list) else []


def _parse_price(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        try:
            value = float(value.strip().replace(",", ""))
        except ValueError:
            return 0.0
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0.0
    return max(0.0, float(value))


def _normalize_segment(segment):
    segment = _as_dict(segment)
    departure = _as_dict(segment.get("departure"))
    arrival = _as_dict(segment.get("arrival"))
    return {
        "departure": {"iataCode": departure.get("iataCode"), "at": departure.get("at")},
        "arrival": {"iataCode": arrival.get("iataCode"), "at": arrival.get("at")},
        "carrierCode": segment.get("carrierCode"),
        "numberOfStops": segment.get("numberOfStops"),
    }


def _normalize_itinerary(itinerary):
    itinerary = _as_dict(itinerary)
    return {
        "duration": itinerary.get("duration"),
        "segments": [_normalize_segment(s) for s in _as_list(itinerary.get("segments"))],
    }


def _collect_carriers(itineraries, carrier_names):
    codes = []
    seen = set()
    for itinerary in itineraries:
        for segment in itinerary["segments"]:
            code = segment["carrierCode"]
            if isinstance(code, str) and code and code not in seen:
                seen.add(code)
                codes.append(code)
    carriers = [str(carrier_names.get(code) or code) for code in codes]
    return carriers or [FALLBACK_CARRIER]


def _compute_metrics(itineraries):
    total_stops = 0
    stop_iatas = []
    for itinerary in itineraries:
        segments = itinerary["segments"]
        total_stops += max(0, len(segments) - 1)
        for segment in segments[:-1]:
            code = segment["arrival"]["iataCode"]
            if code:
                stop_iatas.append(code)
    return {
        "totalMinutes": sum(parse_duration_to_minutes(it["duration"]) for it in itineraries),
        "totalStops": total_stops,
        "stopIatas": stop_iatas,
    }


def normalize_flight_offers(raw):
    """Reshape an Amadeus flight-offers response into the public offer schema.

    Every field is read defensively: a missing dictionary, offer list or
    segment field degrades to an empty value instead of raising. Offers keep
    the upstream order and remember it in ``meta.rankIndex``.
    """
    raw = _as_dict(raw)
    carrier_names = _as_dict(_as_dict(raw.get("dictionaries")).get("carriers"))
    offers = _as_list(raw.get("data"))

    first_price = _as_dict(_as_dict(offers[0]).get("price")) if offers else {}
    currency = first_price.get("currency") or FALLBACK_CURRENCY

    normalized_offers = []
    for idx, offer in enumerate(offers):
        offer = _as_dict(offer)
        price = _as_dict(offer.get("price"))
        itineraries = [_normalize_itinerary(it) for it in _as_list(offer.get("itineraries"))]

        normalized_offers.append(
            {
                "id": str(offer.get("id") or idx),
                "carriers": _collect_carriers(itineraries, carrier_names),
                "price": {
                    "total": _parse_price(price.get("total")),
                    "currency": str(price.get("currency") or currency),
                },
                "itineraries": itineraries,
                "metrics": _compute_metrics(itineraries),
                "meta": {"rankIndex": idx},
            }
        )

    warnings = raw.get("warnings")
    return {
        "offers": normalized_offers,
        "meta": {
            "count": len(normalized_offers),
            "warnings": warnings if warnings is not None else [],
            "source": SOURCE,
        },
    }
