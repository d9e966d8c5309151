import json
import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI, Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from misunderstood.app_logging import init_logging
from misunderstood.knowledge import FileKnowledgeStore
from misunderstood.models import Base, ConversationEvent
from misunderstood.triage.events import SqlEventLogReader
from misunderstood.triage.repository import SqlFlaggedEventRepository
from misunderstood.triage.schemas import FlaggedEventData
from misunderstood.triage.service import MisunderstoodService

BOT = "b1"
T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_record(preview: str = "hi", **overrides) -> FlaggedEventData:
    data = {"bot_id": BOT, "language": "en", "preview": preview, "reason": "auto_hook"}
    data.update(overrides)
    return FlaggedEventData(**data)


def write_knowledge(root: pathlib.Path, bot_id: str, kind: str, name: str, document: dict) -> pathlib.Path:
    directory = root / bot_id / ("intents" if kind == "intent" else "qna")
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def qna_document(qna_id: str) -> dict:
    return {"id": qna_id, "data": {"questions": {"en": ["existing question"]}, "answers": {"en": ["answer"]}}}


def intent_document(name: str) -> dict:
    return {"name": name, "contexts": ["global"], "utterances": {"en": ["existing utterance"]}, "slots": []}


@pytest.fixture
def engine():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    with factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def repository(session: Session) -> SqlFlaggedEventRepository:
    return SqlFlaggedEventRepository(session)


@pytest.fixture
def knowledge_root(tmp_path) -> pathlib.Path:
    root = tmp_path / "bots"
    root.mkdir()
    return root


@pytest.fixture
def knowledge_store(knowledge_root) -> FileKnowledgeStore:
    return FileKnowledgeStore(knowledge_root)


@pytest.fixture
def service(session, knowledge_store) -> MisunderstoodService:
    return MisunderstoodService(
        SqlFlaggedEventRepository(session),
        SqlEventLogReader(session),
        knowledge_store,
    )


@pytest.fixture
def add_turn(session):
    """Insert a conversation event; returns the persisted row."""

    def _add(
        offset_seconds: float,
        *,
        direction: str = "incoming",
        preview: str = "message",
        incoming_event_id: str | None = None,
        thread_id: str = "thread-1",
        session_id: str = "session-1",
        bot_id: str = BOT,
        event: dict | None = None,
    ) -> ConversationEvent:
        document = event or {"direction": direction, "preview": preview}
        row = ConversationEvent(
            bot_id=bot_id,
            thread_id=thread_id,
            session_id=session_id,
            incoming_event_id=incoming_event_id,
            direction=direction,
            event=document,
            created_on=T0 + timedelta(seconds=offset_seconds),
        )
        session.add(row)
        session.flush()
        return row

    return _add


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app
