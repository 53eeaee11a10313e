import json
import logging
from typing import Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.schemas import Message, MessageDraft
from app.utils import generate_message_id, now_ms

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

MESSAGES_KEY = "messages"
LIKED_MESSAGES_KEY = "likedMessages"

# Outcomes of MessageStore.like
LIKED = "liked"
ALREADY_LIKED = "already_liked"
NOT_FOUND = "not_found"


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from app.models import KeyValueEntry  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and the kv_store table exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        if not inspect(engine).has_table("kv_store"):
            logger.error("Database schema not applied: 'kv_store' table not found")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Storage Media
# =============================================================================

class StorageMedium(Protocol):
    """Flat string key/value storage, the shape of a browser's localStorage."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...


class InMemoryMedium:
    """Dict-backed medium, used in tests."""

    def __init__(self, items: Optional[dict] = None):
        self.items = dict(items or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value


class SqlKeyValueMedium:
    """
    Medium backed by the kv_store table.

    Read and write failures are logged and re-raised; MessageStore decides
    whether a failed read may degrade to empty data.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get_item(self, key: str) -> Optional[str]:
        from app.models import KeyValueEntry

        try:
            with self.session_factory() as db:
                entry = db.get(KeyValueEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read key {key}: {e}")
            raise

    def set_item(self, key: str, value: str) -> None:
        from app.models import KeyValueEntry

        with self.session_factory() as db:
            try:
                db.merge(KeyValueEntry(key=key, value=value))
                db.commit()
                logger.debug(f"Stored key {key} ({len(value)} bytes)")
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to write key {key}: {e}")
                raise


# =============================================================================
# Message Repository
# =============================================================================

class MessageStore:
    """
    Message records kept as one JSON array under a single key, plus a
    liked-set (JSON array of ids) under its own key.

    Every operation reads the whole collection, mutates it in memory and
    writes the whole collection back. The two keys are written separately
    with no transaction spanning them.

    Read-only operations treat a failed medium read as empty. create and
    like re-raise it instead, so a blob that could not be read is never
    overwritten.

    Args:
        medium: Storage medium, or None when no storage is available
            (reads return empty results, writes are dropped)
        client_id: Browser identity selecting the liked-set; None uses
            the shared default liked-set
    """

    def __init__(self, medium: Optional[StorageMedium], client_id: Optional[str] = None):
        self.medium = medium
        self.client_id = client_id
        self.liked_key = f"{LIKED_MESSAGES_KEY}:{client_id}" if client_id else LIKED_MESSAGES_KEY

    def _read_list(self, key: str, for_update: bool = False) -> list:
        if self.medium is None:
            return []

        try:
            raw = self.medium.get_item(key)
        except SQLAlchemyError as e:
            if for_update:
                raise
            logger.warning(f"Reading {key} failed, treating as empty: {e}")
            return []

        if not raw:
            return []

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Discarding corrupt blob under {key}: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"Discarding blob under {key}: expected a list, got {type(data).__name__}")
            return []
        return data

    def _write_list(self, key: str, data: list) -> None:
        if self.medium is None:
            logger.debug(f"No storage medium, dropping write to {key}")
            return
        self.medium.set_item(key, json.dumps(data))

    @staticmethod
    def _parse(entry) -> Optional[Message]:
        try:
            return Message.model_validate(entry)
        except ValidationError as e:
            logger.warning(f"Skipping malformed message entry: {e.error_count()} errors")
            return None

    def create(self, draft: MessageDraft) -> Message:
        """
        Store a new message.

        Assigns a fresh id, stamps createdAt with the current epoch
        milliseconds and starts likes at 0.

        Returns:
            The completed record

        Raises:
            SQLAlchemyError: when the collection cannot be read or written
        """
        entries = self._read_list(MESSAGES_KEY, for_update=True)
        taken = {entry.get("id") for entry in entries if isinstance(entry, dict)}

        message_id = generate_message_id()
        while message_id in taken:
            logger.warning(f"Generated id {message_id} already taken, retrying")
            message_id = generate_message_id()

        message = Message(
            **draft.model_dump(),
            id=message_id,
            created_at=now_ms(),
            likes=0,
        )
        entries.append(message.model_dump(by_alias=True))
        self._write_list(MESSAGES_KEY, entries)

        logger.info(f"Message created: id={message_id}, recipient={message.recipient_name}")
        return message

    def list_all(self) -> list[Message]:
        """All messages in insertion order. Entries that fail to parse are skipped."""
        parsed = (self._parse(entry) for entry in self._read_list(MESSAGES_KEY))
        return [message for message in parsed if message is not None]

    def list_by_recipient(self, name: str) -> list[Message]:
        """Messages whose recipientName equals name, ignoring case."""
        wanted = name.lower()
        return [m for m in self.list_all() if m.recipient_name.lower() == wanted]

    def get(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.list_all() if m.id == message_id), None)

    def like(self, message_id: str) -> str:
        """
        Add one like to a message, at most once per liked-set.

        Unknown ids, ids whose entry does not parse as a message and ids
        already in the liked-set are silent no-ops.

        Returns:
            LIKED, ALREADY_LIKED or NOT_FOUND

        Raises:
            SQLAlchemyError: when either blob cannot be read or written
        """
        entries = self._read_list(MESSAGES_KEY, for_update=True)

        index, message = None, None
        for i, entry in enumerate(entries):
            if isinstance(entry, dict) and entry.get("id") == message_id:
                message = self._parse(entry)
                if message is not None:
                    index = i
                    break

        if message is None:
            logger.info(f"Like ignored, message not found: {message_id}")
            return NOT_FOUND

        liked = self._read_list(self.liked_key, for_update=True)
        if message_id in liked:
            logger.info(f"Like ignored, already liked: {message_id}")
            return ALREADY_LIKED

        message.likes += 1
        entries[index] = message.model_dump(by_alias=True)
        liked.append(message_id)

        # messages first, then the liked-set
        self._write_list(MESSAGES_KEY, entries)
        self._write_list(self.liked_key, liked)

        logger.info(f"Message liked: {message_id}, likes={message.likes}")
        return LIKED

    def has_liked(self, message_id: str) -> bool:
        return message_id in self._read_list(self.liked_key)
