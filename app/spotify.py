"""
Spotify catalog search for the track picker.

Uses the client credentials flow: an app token is fetched from the
accounts service and cached until shortly before it expires.
"""

import logging
import time
from typing import Optional

import requests

from app.config import settings
from app.schemas import Track

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
SEARCH_URL = "https://api.spotify.com/v1/search"

# Refresh the token this many seconds before Spotify says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 30


class SpotifySearchError(Exception):
    """Raised when a catalog search cannot be completed."""


class SpotifyClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        limit: int = 10,
        timeout: float = 7.0,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.limit = limit
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expiry_ts: float = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _get_token(self) -> str:
        now = time.time()
        if self._token and now < self._token_expiry_ts:
            return self._token

        if not self.configured:
            raise SpotifySearchError("Spotify credentials are not configured")

        logger.debug("Requesting Spotify access token")
        try:
            resp = self.session.post(
                TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise SpotifySearchError(f"Token request failed: {e}") from e

        token = payload.get("access_token")
        if not token:
            raise SpotifySearchError("Token response did not contain access_token")

        expires_in = int(payload.get("expires_in") or 3600)
        self._token = token
        self._token_expiry_ts = now + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return token

    def search_tracks(self, query: str) -> list[Track]:
        """
        Search the catalog for tracks matching a free-text query.

        Raises:
            SpotifySearchError: on missing credentials, transport errors,
                non-2xx responses or an unexpected response body
        """
        token = self._get_token()
        logger.info(f"Searching Spotify tracks: q={query!r}")

        try:
            resp = self.session.get(
                SEARCH_URL,
                params={"q": query, "type": "track", "limit": self.limit},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            items = ((resp.json() or {}).get("tracks") or {}).get("items") or []
        except (requests.RequestException, ValueError, AttributeError) as e:
            raise SpotifySearchError(f"Search request failed: {e}") from e

        tracks = [_parse_track(item) for item in items if item and item.get("id")]
        logger.info(f"Spotify search returned {len(tracks)} tracks")
        return tracks


def _parse_track(item: dict) -> Track:
    album = item.get("album") or {}
    artists = item.get("artists") or [{}]
    images = album.get("images") or [{}]
    return Track(
        id=item["id"],
        name=item.get("name") or "",
        artist_name=artists[0].get("name") or "",
        album_name=album.get("name") or "",
        album_image=images[0].get("url") or "",
        preview_url=item.get("preview_url"),
    )


def build_spotify_client() -> SpotifyClient:
    """Build a client from settings."""
    return SpotifyClient(
        client_id=settings.SPOTIFY_CLIENT_ID,
        client_secret=settings.SPOTIFY_CLIENT_SECRET,
        limit=settings.SPOTIFY_SEARCH_LIMIT,
        timeout=settings.SPOTIFY_TIMEOUT_SECONDS,
    )
