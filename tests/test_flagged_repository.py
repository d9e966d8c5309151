"""Tests for the SQLAlchemy flagged-message repository."""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update

from misunderstood.models import FlaggedEvent
from misunderstood.models.enums import FlaggedMessageStatus, FlagReason, ResolutionType
from misunderstood.triage.schemas import FilteringOptions, ResolutionData

from conftest import BOT, T0, make_record


def _row_count(session) -> int:
    return session.scalar(select(func.count(FlaggedEvent.id)))


def _first_id(repository) -> int:
    return repository.list_events(BOT, "en")[0].id


def test_register_twice_keeps_a_single_row(repository, session):
    assert repository.register(make_record("hi")) is True
    assert repository.register(make_record("hi")) is False

    assert _row_count(session) == 1


def test_register_skips_previously_treated_message(repository, session, caplog):
    repository.register(make_record("hi"))
    event_id = _first_id(repository)
    repository.update_statuses(BOT, [event_id], FlaggedMessageStatus.APPLIED)

    with caplog.at_level(logging.INFO, logger="misunderstood.triage.repository"):
        inserted = repository.register(make_record("hi"))

    assert inserted is False
    assert _row_count(session) == 1
    assert "already been treated" in caplog.text


def test_register_dedup_is_scoped_by_bot_and_language(repository, session):
    repository.register(make_record("hi"))
    repository.register(make_record("hi", language="fr"))
    repository.register(make_record("hi", bot_id="b2"))
    repository.register(make_record("hello"))

    assert _row_count(session) == 4


def test_register_stores_all_fields(repository):
    repository.register(
        make_record(
            "where is my parcel",
            event_id="evt-1",
            reason=FlagReason.THUMBS_DOWN,
        )
    )

    record = repository.list_events(BOT, "en")[0]
    assert record.event_id == "evt-1"
    assert record.reason == FlagReason.THUMBS_DOWN
    assert record.status == FlaggedMessageStatus.NEW
    assert record.resolution is None
    assert record.created_at is not None
    assert record.updated_at is not None


def test_pending_status_keeps_resolution_data(repository):
    repository.register(make_record("hi"))
    event_id = _first_id(repository)
    data = ResolutionData(
        resolution_type=ResolutionType.INTENT,
        resolution="greetings",
        resolution_params={"contexts": ["global"]},
    )

    updated = repository.update_statuses(BOT, [event_id], FlaggedMessageStatus.PENDING, data)

    record = repository.get(BOT, event_id)
    assert updated == 1
    assert record.status == FlaggedMessageStatus.PENDING
    assert record.resolution_type == ResolutionType.INTENT
    assert record.resolution == "greetings"
    assert record.resolution_params == {"contexts": ["global"]}


def test_pending_without_data_leaves_resolution_unset(repository):
    repository.register(make_record("hi"))
    event_id = _first_id(repository)

    repository.update_statuses(
        BOT, [event_id], FlaggedMessageStatus.PENDING, ResolutionData(resolution="faq_1")
    )

    record = repository.get(BOT, event_id)
    assert record.resolution == "faq_1"
    assert record.resolution_type is None
    assert record.resolution_params is None


def test_non_pending_status_clears_resolution_data(repository):
    repository.register(make_record("hi"))
    repository.register(make_record("hello"))
    ids = [record.id for record in repository.list_events(BOT, "en")]
    data = ResolutionData(resolution_type=ResolutionType.QNA, resolution="faq_1")
    repository.update_statuses(BOT, ids, FlaggedMessageStatus.PENDING, data)

    repository.update_statuses(BOT, [ids[0]], FlaggedMessageStatus.NEW, data)
    repository.update_statuses(BOT, [ids[1]], FlaggedMessageStatus.APPLIED, data)

    for event_id, status in ((ids[0], FlaggedMessageStatus.NEW), (ids[1], FlaggedMessageStatus.APPLIED)):
        record = repository.get(BOT, event_id)
        assert record.status == status
        assert record.resolution_type is None
        assert record.resolution is None
        assert record.resolution_params is None


def test_update_statuses_refreshes_updated_at_and_respects_bot(repository, session):
    repository.register(make_record("hi"))
    repository.register(make_record("hi", bot_id="b2"))
    session.execute(update(FlaggedEvent).values(updated_at=T0))
    own_id = _first_id(repository)
    other_id = repository.list_events("b2", "en")[0].id

    updated = repository.update_statuses(BOT, [own_id, other_id], FlaggedMessageStatus.PENDING)

    assert updated == 1
    assert repository.get(BOT, own_id).updated_at.replace(tzinfo=None) > T0.replace(tzinfo=None)
    assert repository.get("b2", other_id).status == FlaggedMessageStatus.NEW


def test_update_statuses_with_no_ids_is_a_noop(repository):
    assert repository.update_statuses(BOT, [], FlaggedMessageStatus.APPLIED) == 0


def test_get_returns_none_when_missing(repository):
    repository.register(make_record("hi"))
    event_id = _first_id(repository)

    assert repository.get(BOT, 9999) is None
    assert repository.get("another-bot", event_id) is None


def test_resolution_params_stored_as_text_are_decoded(repository, session):
    repository.register(make_record("hi"))
    event_id = _first_id(repository)
    session.execute(
        update(FlaggedEvent)
        .where(FlaggedEvent.id == event_id)
        .values(resolution_params='{"contexts": ["support"]}')
    )
    session.expire_all()

    assert repository.get(BOT, event_id).resolution_params == {"contexts": ["support"]}
    assert repository.list_events(BOT, "en")[0].resolution_params == {"contexts": ["support"]}


def test_purge_deletes_only_matching_status(repository, session):
    for preview in ("a", "b", "c"):
        repository.register(make_record(preview))
    repository.register(make_record("a", bot_id="b2"))
    pending_id = repository.list_events(BOT, "en")[0].id
    repository.update_statuses(BOT, [pending_id], FlaggedMessageStatus.PENDING)

    deleted = repository.purge(BOT, FlaggedMessageStatus.NEW)

    assert deleted == 2
    remaining = repository.list_events(BOT, "en")
    assert [record.id for record in remaining] == [pending_id]
    assert len(repository.list_events("b2", "en")) == 1


def test_list_orders_by_most_recent_update(repository, session):
    for preview in ("first", "second", "third"):
        repository.register(make_record(preview))
    session.execute(update(FlaggedEvent).values(updated_at=T0))
    second = next(r for r in repository.list_events(BOT, "en") if r.preview == "second")

    repository.update_statuses(BOT, [second.id], FlaggedMessageStatus.NEW)

    previews = [record.preview for record in repository.list_events(BOT, "en")]
    assert previews[0] == "second"
    assert sorted(previews) == ["first", "second", "third"]


def test_list_filters_by_status_and_language(repository):
    repository.register(make_record("hi"))
    repository.register(make_record("bonjour", language="fr"))
    repository.register(make_record("hello"))
    hello = next(r for r in repository.list_events(BOT, "en") if r.preview == "hello")
    repository.update_statuses(BOT, [hello.id], FlaggedMessageStatus.PENDING)

    new_records = repository.list_events(BOT, "en", FlaggedMessageStatus.NEW)
    pending_records = repository.list_events(BOT, "en", FlaggedMessageStatus.PENDING)

    assert [record.preview for record in new_records] == ["hi"]
    assert [record.preview for record in pending_records] == ["hello"]
    assert [record.preview for record in repository.list_events(BOT, "fr")] == ["bonjour"]


def test_count_groups_by_status_and_matches_list(repository):
    for preview, reason in (
        ("a", FlagReason.AUTO_HOOK),
        ("b", FlagReason.THUMBS_DOWN),
        ("c", FlagReason.ACTION),
        ("d", FlagReason.THUMBS_DOWN),
    ):
        repository.register(make_record(preview, reason=reason))
    ids = [record.id for record in repository.list_events(BOT, "en")]
    repository.update_statuses(BOT, ids[:1], FlaggedMessageStatus.PENDING)
    repository.update_statuses(BOT, ids[1:2], FlaggedMessageStatus.APPLIED)

    counts = repository.count_events(BOT, "en")
    assert counts == {"new": 2, "pending": 1, "applied": 1}

    for reason in (None, FlagReason.THUMBS_DOWN, FlagReason.MANUAL):
        options = FilteringOptions(reason=reason)
        total = sum(repository.count_events(BOT, "en", options).values())
        assert total == len(repository.list_events(BOT, "en", None, options))


def test_count_returns_empty_mapping_without_rows(repository):
    assert repository.count_events(BOT, "en") == {}


def test_mark_applied_keeps_resolution(repository):
    repository.register(make_record("hi"))
    event_id = _first_id(repository)
    repository.update_statuses(
        BOT,
        [event_id],
        FlaggedMessageStatus.PENDING,
        ResolutionData(resolution_type=ResolutionType.QNA, resolution="faq_1"),
    )

    assert repository.mark_applied(BOT, [event_id]) == 1

    record = repository.get(BOT, event_id)
    assert record.status == FlaggedMessageStatus.APPLIED
    assert record.resolution == "faq_1"
    assert record.resolution_type == ResolutionType.QNA


def test_register_loses_race_to_concurrent_insert(repository, session, monkeypatch, caplog):
    real_execute = session.execute
    calls = {"count": 0}

    def _execute_then_race(statement, *args, **kwargs):
        rows = real_execute(statement, *args, **kwargs).all()
        calls["count"] += 1
        if calls["count"] == 1:
            # Another worker registers the same message between the check and the insert.
            session.add(FlaggedEvent(bot_id=BOT, language="en", preview="hi"))
            session.flush()
        return rows

    monkeypatch.setattr(session, "execute", _execute_then_race)

    with caplog.at_level(logging.INFO, logger="misunderstood.triage.repository"):
        inserted = repository.register(make_record("hi"))

    monkeypatch.undo()
    session.commit()

    assert inserted is False
    assert "concurrent registration" in caplog.text
    assert _row_count(session) == 1


def test_resolution_params_plain_strings_are_kept(repository):
    repository.register(make_record("hi"))
    repository.register(make_record("hello"))
    ids = {record.preview: record.id for record in repository.list_events(BOT, "en")}

    for preview, params in (("hi", "42"), ("hello", "note")):
        repository.update_statuses(
            BOT,
            [ids[preview]],
            FlaggedMessageStatus.PENDING,
            ResolutionData(
                resolution_type=ResolutionType.QNA, resolution="faq_1", resolution_params=params
            ),
        )

    assert repository.get(BOT, ids["hi"]).resolution_params == "42"
    assert repository.get(BOT, ids["hello"]).resolution_params == "note"
