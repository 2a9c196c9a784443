"""Tests for synapse/models.py."""

import pytest

from synapse.models import (
    USER_ID,
    AgentProfile,
    Capability,
    KeyMoment,
    QuoteLink,
    RoundResult,
    ScoreSample,
    StructuredSummary,
    Turn,
)


def test_profile_capability_helpers():
    profile = AgentProfile(
        id="a",
        display_name="A",
        provider="p",
        model="m",
        capabilities=(Capability("general_reasoning", 0.8), Capability("synthesis", 0.9)),
    )
    assert profile.capability_ids == frozenset({"general_reasoning", "synthesis"})
    assert profile.total_strength == pytest.approx(1.7)


def test_roster_entry_has_no_capabilities():
    profile = AgentProfile(id="a", display_name="A", provider="p", model="m", color="blue", avatar="AA")
    assert profile.roster_entry() == {
        "id": "a", "display_name": "A", "provider": "p", "model": "m", "color": "blue", "avatar": "AA",
    }


def test_turn_is_user():
    assert Turn(USER_ID, "User", "hi", 0, "intervention", "user-0").is_user
    assert not Turn("a", "A", "hi", 0, "curious", "msg-0-a").is_user


def test_round_result_to_dict():
    result = RoundResult(
        round_number=1,
        status="exhausted",
        consensus_score=0.42,
        consensus_history=[ScoreSample(0, 0.3)],
        momentum_history=[ScoreSample(1, 0.1)],
        influence={"msg-0-a": 1.0},
        quote_links=[QuoteLink("msg-0-a", "msg-1-b", "A", "Hi.")],
        turns_completed=2,
    )
    d = result.to_dict()
    assert d["consensus_history"] == [{"turn": 0, "score": 0.3}]
    assert d["quote_links"][0]["source_message_id"] == "msg-0-a"
    assert d["turns_completed"] == 2


def test_summary_to_dict_flattens_key_moments():
    summary = StructuredSummary(
        verdict="Ship it.", confidence="strong", key_moments=[KeyMoment("a", "Latency is fine", "decided it")]
    )
    assert summary.to_dict()["key_moments"] == [
        {"agent_id": "a", "excerpt": "Latency is fine", "significance": "decided it"}
    ]
