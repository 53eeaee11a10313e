"""
Pydantic schemas for request/response validation.

This module contains:
- The message record and its draft (stored and served with camelCase keys)
- Track candidates returned by the search proxy
- Response models for the remaining API routes
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Message Records
# =============================================================================

class MessageDraft(BaseModel):
    """
    A message as composed by the user, before the store assigns
    id, createdAt and likes.

    Field contents are not validated: empty strings and malformed
    URLs are accepted as-is.
    """
    recipient_name: str = Field(
        ...,
        alias="recipientName",
        description="Who the message is for"
    )
    message: str = Field(..., description="Message body")
    song_id: str = Field(
        ...,
        alias="songId",
        description="Spotify track identifier"
    )
    song_name: str = Field(..., alias="songName", description="Track title")
    artist_name: str = Field(..., alias="artistName", description="Track artist")
    album_image: str = Field(..., alias="albumImage", description="Album artwork URL")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "recipientName": "Sam",
                    "message": "hi",
                    "songId": "4uLU6hMCjMI75M1A2tKUQC",
                    "songName": "Song",
                    "artistName": "Artist",
                    "albumImage": "https://i.scdn.co/image/ab67616d0000b273",
                }
            ]
        }
    }


class Message(MessageDraft):
    """A stored message record."""
    id: str = Field(..., description="Unique message identifier")
    created_at: int = Field(
        ...,
        alias="createdAt",
        description="Creation time in epoch milliseconds"
    )
    likes: int = Field(default=0, ge=0, description="Number of likes")


# =============================================================================
# Search Proxy
# =============================================================================

class Track(BaseModel):
    """A track candidate from the Spotify catalog."""
    id: str = Field(..., description="Spotify track identifier")
    name: str = Field(..., description="Track title")
    artist_name: str = Field(default="", alias="artistName")
    album_name: str = Field(default="", alias="albumName")
    album_image: str = Field(default="", alias="albumImage")
    preview_url: Optional[str] = Field(default=None, alias="previewUrl")

    model_config = {"populate_by_name": True}


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class LikeResponse(BaseModel):
    """Response model for POST /messages/{id}/like."""
    id: str = Field(..., description="Message identifier")
    likes: int = Field(..., ge=0, description="Like count after the request")
    liked: bool = Field(..., description="Whether the caller has liked the message")


class LikedStatusResponse(BaseModel):
    """Response model for GET /messages/{id}/liked."""
    id: str = Field(..., description="Message identifier")
    liked: bool = Field(..., description="Whether the caller has liked the message")


class ShareLinksResponse(BaseModel):
    """Links for sharing a message and embedding its song."""
    permalink: str = Field(..., description="Page rendering the message")
    whatsapp: str = Field(..., description="WhatsApp share intent")
    instagram: str = Field(..., description="Instagram story composer")
    embed: str = Field(..., description="Spotify embedded player URL")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
