"""Utility script to bootstrap the database with a demo bot conversation."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv
from sqlalchemy import select, text

from misunderstood.core.db import ensure_schema, get_engine, get_sessionmaker, session_scope
from misunderstood.core.retry import call_with_backoff
from misunderstood.core.settings import load_settings, safe_url
from misunderstood.knowledge import FileKnowledgeStore
from misunderstood.knowledge.store import ResourceKind
from misunderstood.models import Base, ConversationEvent
from misunderstood.models.enums import FlagReason
from misunderstood.triage.repository import SqlFlaggedEventRepository
from misunderstood.triage.schemas import FlaggedEventData

logger = logging.getLogger("seed")

DEMO_BOT = "demo-bot"
DEMO_LANGUAGE = "en"
DEMO_TURNS: tuple[tuple[str, str], ...] = (
    ("incoming", "hello"),
    ("outgoing", "Hi! How can I help you today?"),
    ("incoming", "where is my parcel"),
    ("outgoing", "Sorry, I did not understand that."),
    ("incoming", "my <b>order</b> has not arrived"),
    ("outgoing", "Sorry, I did not understand that."),
)


def wait_for_database(max_attempts: int = 10, delay: float = 3.0) -> None:
    """Attempt to reach the database, backing off between attempts."""

    settings = load_settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not configured.")
    engine = get_engine(settings.database_url)

    def _ping() -> None:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    try:
        call_with_backoff(
            _ping,
            polling_interval=delay,
            max_backoff_factor=settings.max_backoff_factor,
            max_attempts=max_attempts,
        )
    except Exception as exc:
        raise RuntimeError("Database did not become ready in time") from exc
    finally:
        engine.dispose()
    logger.info("Database connection established: %s", safe_url(settings.database_url))


def _seed_knowledge(store: FileKnowledgeStore) -> None:
    documents = {
        (ResourceKind.QNA, "delivery_status"): {
            "id": "delivery_status",
            "data": {
                "questions": {DEMO_LANGUAGE: ["where is my order"]},
                "answers": {DEMO_LANGUAGE: ["You can track your order from your account page."]},
                "enabled": True,
            },
        },
        (ResourceKind.INTENT, "greetings"): {
            "name": "greetings",
            "contexts": ["global"],
            "utterances": {DEMO_LANGUAGE: ["hello", "hi there"]},
            "slots": [],
        },
    }
    for (kind, name), document in documents.items():
        if not store.path_for(DEMO_BOT, kind, name).exists():
            store.write(DEMO_BOT, kind, name, document)


def seed() -> None:
    settings = load_settings()
    engine = get_engine(settings.database_url)
    ensure_schema(engine)
    # Demo databases have no conversation pipeline writing the events table.
    Base.metadata.create_all(engine, tables=[ConversationEvent.__table__])
    factory = get_sessionmaker(engine)

    with session_scope(factory) as session:
        already_seeded = session.scalars(
            select(ConversationEvent.id).where(ConversationEvent.bot_id == DEMO_BOT).limit(1)
        ).first()
        if already_seeded:
            logger.info("Demo conversation already present; skipping.")
            return

        start = datetime.now(timezone.utc) - timedelta(minutes=10)
        for index, (direction, preview) in enumerate(DEMO_TURNS):
            event_id = f"demo-{index}"
            session.add(
                ConversationEvent(
                    bot_id=DEMO_BOT,
                    thread_id="thread-1",
                    session_id="session-1",
                    incoming_event_id=event_id,
                    direction=direction,
                    event={
                        "direction": direction,
                        "preview": preview,
                        "payload": {"type": "text", "text": preview},
                        "nlu": {"includedContexts": ["global"]},
                    },
                    created_on=start + timedelta(seconds=index),
                )
            )
        session.flush()

        repository = SqlFlaggedEventRepository(session)
        for index, (direction, preview) in enumerate(DEMO_TURNS):
            if direction != "incoming" or index == 0:
                continue
            repository.register(
                FlaggedEventData(
                    event_id=f"demo-{index}",
                    bot_id=DEMO_BOT,
                    language=DEMO_LANGUAGE,
                    preview=preview,
                    reason=FlagReason.AUTO_HOOK,
                )
            )

    _seed_knowledge(FileKnowledgeStore(settings.knowledge_dir))
    logger.info("Seeded bot %s; knowledge files under %s", DEMO_BOT, settings.knowledge_dir)


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    wait_for_database()
    seed()


if __name__ == "__main__":
    main()
