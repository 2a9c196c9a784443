"""Tests for synapse/session.py."""

import time

import pytest

from synapse import events as ev
from synapse.session import ACTIVE, IDLE, MAX_MESSAGE_CHARS, PENDING, SessionStore


def test_create_assigns_unique_ids(store):
    a = store.create("Problem one")
    b = store.create("Problem two")
    assert a.id != b.id
    assert a.status == PENDING
    assert len(store) == 2


def test_create_validates_problem(store):
    with pytest.raises(ValueError):
        store.create("   ")
    with pytest.raises(ValueError):
        store.create("x" * 12_001)


def test_update_rejects_unknown_fields(store):
    session = store.create("Problem")
    with pytest.raises(AttributeError):
        store.update(session.id, colour="red")
    assert store.update("missing", status=ACTIVE) is False


def test_interventions_only_accepted_while_active(store):
    session = store.create("Problem")
    assert store.push_intervention(session.id, "Hello") is False

    store.update(session.id, status=ACTIVE)
    assert store.push_intervention(session.id, "  Hello  ") is True
    assert store.has_pending_interventions(session.id)


def test_intervention_validation(store):
    session = store.create("Problem")
    store.update(session.id, status=ACTIVE)
    with pytest.raises(ValueError):
        store.push_intervention(session.id, " ")
    with pytest.raises(ValueError):
        store.push_intervention(session.id, "x" * (MAX_MESSAGE_CHARS + 1))


def test_drain_empties_the_queue_in_order(store, session_id):
    store.push_intervention(session_id, "first")
    store.push_intervention(session_id, "second")

    drained = store.drain_interventions(session_id)

    assert [i.content for i in drained] == ["first", "second"]
    assert store.drain_interventions(session_id) == []
    assert not store.has_pending_interventions(session_id)


def test_pause_flag(store, session_id):
    assert not store.is_paused(session_id)
    store.set_paused(session_id, True)
    assert store.is_paused(session_id)
    store.set_paused(session_id, False)
    assert not store.is_paused(session_id)


def test_reactions_tally(store, session_id):
    store.add_reaction(session_id, "msg-0-a", "👍")
    store.add_reaction(session_id, "msg-0-a", "👍")
    store.add_reaction(session_id, "msg-0-a", "🤔")

    assert store.reactions(session_id) == {"msg-0-a": {"👍": 2, "🤔": 1}}
    assert store.add_reaction("missing", "m", "👍") is False


def test_replay_records_elapsed_time(store, session_id):
    store.record_event(session_id, ev.make_event(ev.DEBATE_START, {"problem": "p", "agents": []}))

    replay = store.replay_events(session_id)

    assert replay[0].event["type"] == ev.DEBATE_START
    assert replay[0].elapsed_ms >= 0


def test_cleanup_drops_expired_sessions():
    store = SessionStore(ttl_sec=60)
    old = store.create("Old")
    fresh = store.create("Fresh")
    old.created_at = time.time() - 120

    assert store.cleanup() == 1
    assert store.get(old.id) is None
    assert store.get(fresh.id) is not None


def test_status_constants_are_distinct():
    assert len({PENDING, ACTIVE, IDLE}) == 3
