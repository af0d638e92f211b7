from __future__ import annotations

import asyncio

import pytest

from conftest import near
from geohunt.models.clue import ValidationMode
from geohunt.models.progress import HintKind, Pending, ProofKind
from geohunt.services.errors import DecodeFailure, NotJoined, ReferenceImageMissing, StaleSubmission
from geohunt.services.geofence import GeoPoint
from geohunt.services.progress_store import TeamProgressStore
from geohunt.services.validation_engine import (
    FALLBACK_PROMPT,
    Advanced,
    ValidationEngine,
    resolve_attempt,
)

TEAM = "red"


def at(graph, clue_id: str, meters: float = 10.0):
    clue = graph.get_clue(clue_id)
    return near(clue.lat, clue.lng, meters)


def join_at(engine, clue_id: str = "start"):
    asyncio.run(engine.join_team(TEAM))
    progress = engine.store.get(TEAM)
    progress.current_clue_id = clue_id
    return progress


# -------------------- transition pure --------------------

@pytest.mark.parametrize(
    "mode,proof,ok,pending,expected",
    [
        (ValidationMode.PHOTO, ProofKind.PHOTO, True, Pending(), True),
        (ValidationMode.PHOTO, ProofKind.PHOTO, False, Pending(photo=True), False),
        (ValidationMode.PHOTO, ProofKind.ANSWER, True, Pending(), False),
        (ValidationMode.PHOTO, ProofKind.ANSWER, True, Pending(photo=True), True),
        (ValidationMode.QA, ProofKind.ANSWER, True, Pending(), True),
        (ValidationMode.QA, ProofKind.PHOTO, True, Pending(), False),
        (ValidationMode.QA, ProofKind.PHOTO, True, Pending(qa=True), True),
        (ValidationMode.BOTH, ProofKind.PHOTO, True, Pending(), False),
        (ValidationMode.BOTH, ProofKind.ANSWER, True, Pending(photo=True), True),
        (ValidationMode.BOTH, ProofKind.ANSWER, False, Pending(photo=True), False),
        (ValidationMode.EITHER, ProofKind.ANSWER, True, Pending(), True),
        (ValidationMode.EITHER, ProofKind.PHOTO, False, Pending(), False),
        (ValidationMode.EITHER, ProofKind.PHOTO, False, Pending(qa=True), True),
    ],
)
def test_resolve_attempt_table(mode, proof, ok, pending, expected):
    state = resolve_attempt(mode, proof, ok, pending, geo_ok=True)
    assert isinstance(state, Advanced) is expected


@pytest.mark.parametrize("mode", list(ValidationMode))
def test_resolve_attempt_requires_geofence(mode):
    state = resolve_attempt(mode, ProofKind.PHOTO, True, Pending(photo=True, qa=True), geo_ok=False)
    assert state == Pending(photo=True, qa=True)


# -------------------- join --------------------

def test_join_creates_progress_at_start(engine, channel):
    joined = asyncio.run(engine.join_team(TEAM))

    assert joined["state"] == {"currentClueId": "start", "hint": "Start at: Town Square"}
    assert joined["history"][-1]["text"].startswith("Welcome!")
    progress = engine.store.get(TEAM)
    assert progress.satisfaction == Pending()
    assert all(step == 0 for step in progress.hint_cursor.values())


def test_join_is_idempotent(engine, graph):
    join_at(engine, "mid")
    joined = asyncio.run(engine.join_team(TEAM))
    assert joined["state"]["currentClueId"] == "mid"


# -------------------- modes --------------------

def test_both_mode_needs_photo_then_answer(engine, graph):
    join_at(engine)
    here = at(graph, "start", 10)

    photo = asyncio.run(engine.submit_photo(TEAM, "start", here, b"match"))
    assert photo.advanced is False
    assert photo.geo_ok is True
    assert photo.proof_ok is True
    assert photo.similarity == pytest.approx(0.9)
    assert photo.distance == pytest.approx(10, abs=0.01)
    assert engine.store.get(TEAM).satisfaction == Pending(photo=True, qa=False)

    answer = asyncio.run(engine.submit_answer(TEAM, "start", here, "eiffel tower"))
    assert answer.advanced is True
    progress = engine.store.get(TEAM)
    assert progress.current_clue_id == "mid"
    assert progress.history == ["start"]


def test_either_mode_answer_alone_advances(engine, graph):
    join_at(engine, "mid")
    result = asyncio.run(engine.submit_answer(TEAM, "mid", at(graph, "mid"), "Seven"))
    assert result.advanced is True
    assert result.to_dict() == {
        "ok": True,
        "geoOk": True,
        "ansOk": True,
        "similarity": 1.0,
        "distance": pytest.approx(10, abs=0.01),
    }
    assert engine.store.get(TEAM).current_clue_id == "photo-only"


def test_qa_mode_photo_never_advances(engine, graph):
    join_at(engine, "qa-only")
    result = asyncio.run(engine.submit_photo(TEAM, "qa-only", at(graph, "qa-only"), b"anything"))
    assert result.advanced is False
    assert result.proof_ok is True
    assert result.similarity == 1.0
    assert engine.store.get(TEAM).current_clue_id == "qa-only"


def test_photo_mode_answer_alone_never_advances(engine, graph):
    join_at(engine, "photo-only")
    result = asyncio.run(engine.submit_answer(TEAM, "photo-only", at(graph, "photo-only"), "whatever"))
    assert result.advanced is False
    assert result.proof_ok is True


def test_photo_mode_needs_matching_photo_inside_fence(engine, graph):
    join_at(engine, "photo-only")

    far = asyncio.run(engine.submit_photo(TEAM, "photo-only", at(graph, "photo-only", 500), b"match"))
    assert far.advanced is False and far.geo_ok is False and far.proof_ok is True

    bad = asyncio.run(engine.submit_photo(TEAM, "photo-only", at(graph, "photo-only"), b"nope"))
    assert bad.advanced is False and bad.geo_ok is True

    good = asyncio.run(engine.submit_photo(TEAM, "photo-only", at(graph, "photo-only"), b"match"))
    assert good.advanced is True
    assert engine.store.get(TEAM).current_clue_id == "qa-only"


# -------------------- invariants --------------------

def test_satisfaction_is_monotonic(engine, graph):
    join_at(engine)
    asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start", 500), b"match"))
    asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"nope"))
    asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start"), "big ben"))
    assert engine.store.get(TEAM).satisfaction == Pending(photo=True, qa=False)

    asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start", 500), "eiffel tower"))
    assert engine.store.get(TEAM).satisfaction == Pending(photo=True, qa=True)
    assert engine.store.get(TEAM).current_clue_id == "start"

    # les deux preuves acquises : un simple passage dans la zone suffit
    result = asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start"), "big ben"))
    assert result.advanced is True


def test_reset_on_advance(engine, graph):
    join_at(engine)
    asyncio.run(engine.request_hint(TEAM))
    asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"nope"))
    asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start"), "big ben"))
    progress = engine.store.get(TEAM)
    assert progress.hint_cursor[HintKind.GENERIC] == 1

    asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"match"))
    asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start"), "Eiffel Tower"))

    assert progress.current_clue_id == "mid"
    assert progress.satisfaction == Pending()
    assert progress.hint_cursor == {kind: 0 for kind in HintKind}


def test_terminal_clue_reports_done(engine, graph, channel):
    join_at(engine, "qa-only")
    result = asyncio.run(engine.submit_answer(TEAM, "qa-only", at(graph, "qa-only"), "River"))

    assert result.advanced is True
    assert result.done is True
    progress = engine.store.get(TEAM)
    assert progress.current_clue_id == "qa-only"
    assert progress.finished is True
    assert channel.of_type("progress")[-1] == {
        "nextClueId": None,
        "done": True,
        "message": "Answer accepted. Hunt complete!",
    }


def test_dangling_next_clue_stays_in_place(engine, graph):
    graph.update_clue("photo-only", {"nextClueId": "ghost"})
    join_at(engine, "photo-only")
    result = asyncio.run(engine.submit_photo(TEAM, "photo-only", at(graph, "photo-only"), b"match"))

    assert result.advanced is True and result.done is True
    assert engine.store.get(TEAM).current_clue_id == "photo-only"


def test_stale_submission_leaves_progress_unchanged(engine, graph, channel):
    join_at(engine)
    before = engine.team_snapshot(TEAM)
    events_before = len(channel.events)

    with pytest.raises(StaleSubmission):
        asyncio.run(engine.submit_photo(TEAM, "mid", at(graph, "mid"), b"match"))
    with pytest.raises(StaleSubmission):
        asyncio.run(engine.submit_answer(TEAM, "mid", at(graph, "mid"), "seven"))

    assert engine.team_snapshot(TEAM) == before
    assert len(channel.events) == events_before


def test_unknown_team_is_not_joined(engine, graph):
    with pytest.raises(NotJoined):
        asyncio.run(engine.submit_answer("ghost", "start", at(graph, "start"), "x"))
    with pytest.raises(NotJoined):
        asyncio.run(engine.request_hint("ghost"))


def test_missing_reference_image_is_server_error(engine, graph, tmp_path):
    join_at(engine)
    (tmp_path / "assets" / "clues" / "start.png").unlink()
    before = engine.team_snapshot(TEAM)

    with pytest.raises(ReferenceImageMissing) as info:
        asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"match"))

    assert info.value.status_code == 500
    assert engine.team_snapshot(TEAM) == before


def test_undecodable_upload_does_not_touch_progress(graph, channel):
    engine = ValidationEngine(graph, TeamProgressStore(), channel)
    join_at(engine)
    before = engine.team_snapshot(TEAM)

    with pytest.raises(DecodeFailure):
        asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"garbage"))

    assert engine.team_snapshot(TEAM) == before


def test_real_scorer_accepts_matching_photo(graph, channel, tmp_path):
    engine = ValidationEngine(graph, TeamProgressStore(), channel)
    join_at(engine, "photo-only")
    reference = (tmp_path / "assets" / "clues" / "photo-only.png").read_bytes()

    result = asyncio.run(engine.submit_photo(TEAM, "photo-only", at(graph, "photo-only"), reference))

    assert result.similarity == 1.0
    assert result.advanced is True


# -------------------- localisation --------------------

def test_missing_location_fails_closed(engine):
    join_at(engine, "mid")
    result = asyncio.run(engine.submit_answer(TEAM, "mid", None, "seven"))
    assert result.geo_ok is False
    assert result.distance is None
    assert result.advanced is False


def test_last_known_location_is_reused(engine, graph):
    join_at(engine, "mid")
    asyncio.run(engine.submit_answer(TEAM, "mid", at(graph, "mid"), "wrong"))
    result = asyncio.run(engine.submit_answer(TEAM, "mid", None, "seven"))
    assert result.geo_ok is True
    assert result.advanced is True


# -------------------- hints & notifications --------------------

def test_failed_photo_emits_progressive_photo_hints(engine, graph, channel):
    join_at(engine)
    for _ in range(3):
        asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"nope"))
    assert channel.bot_texts()[-3:] == ["Hint: p1", "Hint: p2", "Hint: p2"]


def test_failed_answer_emits_rejection_then_hint(engine, graph, channel):
    join_at(engine)
    asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start"), "big ben"))
    messages = channel.of_type("chat:message")
    assert [m["text"] for m in messages[-3:]] == ["answer: big ben", "Answer not accepted.", "Hint: a1"]
    assert [m["role"] for m in messages[-3:]] == ["user", "bot", "bot"]


def test_accepted_photo_outside_fence_asks_to_move_closer(engine, graph, channel):
    join_at(engine)
    asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start", 500), b"match"))
    assert channel.bot_texts()[-1] == "Photo accepted. Move closer to the target circle."


def test_advance_notifies_progress_and_success_message(engine, graph, channel):
    join_at(engine)
    asyncio.run(engine.submit_photo(TEAM, "start", at(graph, "start"), b"match"))
    assert channel.bot_texts()[-1] == "Photo accepted. Answer the question to continue."
    asyncio.run(engine.submit_answer(TEAM, "start", at(graph, "start"), "eiffel tower"))

    assert channel.of_type("progress")[-1] == {"nextClueId": "mid", "done": False, "message": "Nice"}
    assert channel.bot_texts()[-1] == "Nice"
    assert all(team == TEAM for team, _, _ in channel.events)


def test_request_hint_clamps_to_last(engine):
    join_at(engine)
    hints = [asyncio.run(engine.request_hint(TEAM)) for _ in range(5)]
    assert hints == ["g1", "g2", "g3", "g3", "g3"]


def test_chat_history_is_bounded(graph, channel):
    engine = ValidationEngine(graph, TeamProgressStore(chat_limit=5), channel)
    join_at(engine)
    for _ in range(10):
        asyncio.run(engine.request_hint(TEAM))
    history = engine.store.chat_history(TEAM)
    assert len(history) == 5
    assert history[-1].text == "Hint: g3"


# -------------------- concurrence --------------------

def test_concurrent_photo_and_answer_do_not_lose_updates(engine, graph):
    join_at(engine)
    here = at(graph, "start")

    async def race():
        return await asyncio.gather(
            engine.submit_photo(TEAM, "start", here, b"match"),
            engine.submit_answer(TEAM, "start", here, "eiffel tower"),
            return_exceptions=True,
        )

    results = asyncio.run(race())

    advanced = [r for r in results if not isinstance(r, Exception) and r.advanced]
    assert len(advanced) == 1
    assert engine.store.get(TEAM).current_clue_id == "mid"
    assert engine.store.get(TEAM).history == ["start"]


# -------------------- chat --------------------

def test_chat_where_reports_rounded_distance(engine, graph, channel):
    join_at(engine)
    intent = asyncio.run(engine.handle_chat(TEAM, "where is it?", at(graph, "start", 12.4)))
    assert intent.kind.value == "where"
    assert channel.bot_texts()[-1] == "You are 12m from the target circle."


def test_chat_where_without_location(engine, channel):
    join_at(engine)
    asyncio.run(engine.handle_chat(TEAM, "how far?"))
    assert channel.bot_texts()[-1] == "Share your location so I can measure the distance."


def test_chat_hint_uses_generic_cursor(engine, channel):
    join_at(engine)
    asyncio.run(engine.handle_chat(TEAM, "help"))
    asyncio.run(engine.handle_chat(TEAM, "hint"))
    assert channel.bot_texts()[-2:] == ["Hint: g1", "Hint: g2"]


def test_chat_answer_goes_through_qa_path(engine, graph):
    join_at(engine, "mid")
    intent = asyncio.run(engine.handle_chat(TEAM, "answer: seven", at(graph, "mid")))
    assert intent.kind.value == "answer"
    assert engine.store.get(TEAM).current_clue_id == "photo-only"


def test_chat_unknown_on_photo_clue(engine, channel):
    join_at(engine, "photo-only")
    asyncio.run(engine.handle_chat(TEAM, "hello there"))
    assert channel.bot_texts()[-1] == FALLBACK_PROMPT


def test_chat_ignores_blank_messages(engine, channel):
    join_at(engine)
    count = len(channel.events)
    assert asyncio.run(engine.handle_chat(TEAM, "   ")) is None
    assert len(channel.events) == count


# -------------------- entrées hostiles --------------------

def test_unknown_teams_do_not_allocate_locks(engine, graph):
    for n in range(100):
        with pytest.raises(NotJoined):
            asyncio.run(engine.submit_answer(f"ghost-{n}", "start", at(graph, "start"), "x"))
        with pytest.raises(NotJoined):
            asyncio.run(engine.handle_chat(f"ghost-{n}", "hint"))
    assert engine.store.lock_count() == 0

    join_at(engine)
    assert engine.store.lock_count() == 1


def test_non_finite_location_keeps_last_known_position(engine, graph):
    join_at(engine, "mid")
    here = at(graph, "mid")
    asyncio.run(engine.submit_answer(TEAM, "mid", here, "wrong"))

    result = asyncio.run(engine.submit_answer(TEAM, "mid", GeoPoint(float("nan"), 2.0), "seven"))

    assert result.geo_ok is True
    assert result.advanced is True
    assert engine.store.get(TEAM).last_location == here


def test_empty_answer_is_not_accepted_on_answer_clue(engine, graph):
    join_at(engine, "qa-only")
    result = asyncio.run(engine.submit_answer(TEAM, "qa-only", at(graph, "qa-only"), "?!"))
    assert result.proof_ok is False
    assert result.advanced is False
