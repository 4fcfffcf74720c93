from functools import lru_cache

from django.conf import settings

from flights.providers.amadeus import AmadeusProvider
from flights.providers.auth import AccessTokenCache
from flights.providers.base import ProviderError


@lru_cache(maxsize=None)
def get_token_cache(client_id, client_secret, base_url, timeout=25):
    """Process-wide token cache, one per issuer configuration."""
    return AccessTokenCache(client_id, client_secret, base_url, timeout=timeout)


def get_flight_provider():
    """Return the configured flight provider instance."""

    raw_name = getattr(settings, "FLIGHTS_PROVIDER", None) or "amadeus"
    provider_name = str(raw_name).strip().lower()

    aliases = {
        "amadeus": "amadeus",
        "amadeus-test": "amadeus",
        "amadeus-self-service": "amadeus",
    }

    provider_name = aliases.get(provider_name, provider_name)

    if provider_name == "amadeus":
        base_url = getattr(settings, "AMADEUS_BASE_URL", "https://test.api.amadeus.com")
        timeout = getattr(settings, "AMADEUS_TIMEOUT_SECONDS", 25)
        token_cache = get_token_cache(
            getattr(settings, "AMADEUS_CLIENT_ID", ""),
            getattr(settings, "AMADEUS_CLIENT_SECRET", ""),
            base_url,
            timeout,
        )
        return AmadeusProvider(token_cache, base_url=base_url, timeout=timeout)

    raise ProviderError(f"Unknown flights provider: {provider_name}", status_code=500)
