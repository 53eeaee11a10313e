"""
Utility functions for the message API.
"""

import logging
import secrets
import string
import time
from urllib.parse import quote

logger = logging.getLogger(__name__)

BASE36_ALPHABET = string.digits + string.ascii_lowercase
MESSAGE_ID_LENGTH = 7

SPOTIFY_EMBED_URL = "https://open.spotify.com/embed/track/{song_id}?theme=0"
WHATSAPP_SHARE_URL = "https://wa.me/?text={text}"
INSTAGRAM_STORY_URL = "https://instagram.com/stories/create"


def generate_message_id(length: int = MESSAGE_ID_LENGTH) -> str:
    """
    Generate a short random base-36 identifier.

    36**7 possible values keeps collisions negligible for a few thousand
    records; the store still rejects an id that is already taken.
    """
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def build_permalink(base_url: str, message_id: str) -> str:
    return f"{base_url.rstrip('/')}/messages/{quote(message_id, safe='')}"


def build_share_links(base_url: str, message_id: str, song_id: str) -> dict:
    """
    Build the links used to share a message.

    Args:
        base_url: Public origin of the service (scheme + host)
        message_id: Message identifier
        song_id: Spotify track identifier of the message's song

    Returns:
        Dict with permalink, whatsapp, instagram and embed URLs
    """
    permalink = build_permalink(base_url, message_id)
    text = quote(f"Check out this message on For Bias: {permalink}", safe="")
    logger.debug(f"Built share links for message {message_id}")

    return {
        "permalink": permalink,
        "whatsapp": WHATSAPP_SHARE_URL.format(text=text),
        "instagram": INSTAGRAM_STORY_URL,
        "embed": SPOTIFY_EMBED_URL.format(song_id=quote(song_id, safe="")),
    }
