import logging
import time
from dataclasses import dataclass

import requests

from flights.providers.base import ConfigurationError, UpstreamAuthError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/security/oauth2/token"
DEFAULT_EXPIRES_IN = 900
# Tokens within this margin of expiry are treated as expired.
EXPIRY_SAFETY_MARGIN_MS = 15_000


@dataclass
class CachedToken:
    value: str
    expires_at_epoch_ms: int

    def is_usable(self, now_ms: int) -> bool:
        return self.expires_at_epoch_ms > now_ms + EXPIRY_SAFETY_MARGIN_MS


def _parse_expires_in(value) -> int:
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_EXPIRES_IN
    return seconds if seconds > 0 else DEFAULT_EXPIRES_IN


class AccessTokenCache:
    """Single-slot cache for a client-credentials access token.

    Refreshes are not serialized: two overlapping refreshes both hit the
    issuer and the last one to finish wins the slot. Either token is valid.
    """

    def __init__(self, client_id, client_secret, base_url, *, timeout=25, clock=time.time):
        self.client_id = client_id or ""
        self.client_secret = client_secret or ""
        self.token_url = base_url.rstrip("/") + TOKEN_PATH
        self.timeout = timeout
        self._clock = clock
        self._token: CachedToken | None = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def clear(self) -> None:
        self._token = None

    def get_access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("Missing AMADEUS_CLIENT_ID / AMADEUS_CLIENT_SECRET.")

        now_ms = self._now_ms()
        token = self._token
        if token is not None and token.is_usable(now_ms):
            return token.value

        self._token = self._fetch_token(now_ms)
        return self._token.value

    def _fetch_token(self, now_ms: int) -> CachedToken:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            response = requests.post(
                self.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Amadeus token request failed.")
            raise UpstreamAuthError(f"Token error: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Amadeus token request rejected",
                extra={"status_code": response.status_code},
            )
            raise UpstreamAuthError(
                f"Token error: {response.status_code} {response.text}",
                upstream_status=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamAuthError(
                "Token response was not valid JSON.",
                upstream_status=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise UpstreamAuthError(
                "Token response did not include an access_token.",
                upstream_status=response.status_code,
                body=response.text,
            )

        expires_in = _parse_expires_in(payload.get("expires_in"))
        logger.info("Fetched Amadeus access token", extra={"expires_in": expires_in})
        return CachedToken(
            value=str(payload["access_token"]),
            expires_at_epoch_ms=now_ms + expires_in * 1000,
        )
