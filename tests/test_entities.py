from __future__ import annotations

import pytest

from entity_replacer.entities import (
    EntityCollisionError,
    EntityMapError,
    EntitySession,
    Selection,
    deserialize_session,
    edit_document,
    entity_key,
    entity_number,
    entity_occurrences,
    replace_literal,
    replace_selection,
    replace_text,
    restore_all,
    serialize_entity_map,
    serialize_session,
    utf16_to_index,
)


def _select(session: EntitySession, text: str) -> Selection:
    start = session.document.index(text)
    return Selection.from_document(session.document, start, start + len(text))


def test_cat_mat_walkthrough() -> None:
    session = EntitySession(document="The cat sat on the cat mat.")

    session = replace_selection(session, _select(session, "cat"))
    assert session.document == "The [entity-1] sat on the [entity-1] mat."
    assert session.entities == {"[entity-1]": "cat"}
    assert session.counter == 2

    session = replace_selection(session, _select(session, "mat"))
    assert session.document == "The [entity-1] sat on the [entity-1] [entity-2]."
    assert session.entities == {"[entity-1]": "cat", "[entity-2]": "mat"}
    assert session.counter == 3

    session = restore_all(session)
    assert session.document == "The cat sat on the cat mat."
    assert session.entities == {}
    assert session.counter == 1


def test_replace_reports_occurrence_count() -> None:
    session, count = replace_text(EntitySession(document="a-b-a-b-a"), "a")
    assert count == 3
    assert session.document == "[entity-1]-b-[entity-1]-b-[entity-1]"


def test_replace_does_not_mutate_input() -> None:
    original = EntitySession(document="one two one")
    updated, _ = replace_text(original, "one")
    assert original.document == "one two one"
    assert original.entities == {}
    assert original.counter == 1
    assert updated is not original


def test_empty_selection_is_a_no_op() -> None:
    session = EntitySession(document="hello world", entities={"[entity-1]": "x"}, counter=2)
    selection = Selection.from_document(session.document, 4, 4)
    assert selection.is_empty
    assert replace_selection(session, selection) is session
    same, count = replace_text(session, "")
    assert same is session
    assert count == 0


@pytest.mark.parametrize(
    "needle",
    [".", "a.c", "(x)", "[1]", "$^", "a+b*c?", "{2}", "back\\slash", "x|y"],
)
def test_special_characters_match_literally(needle: str) -> None:
    document = f"start {needle} middle abc xyz {needle} end"
    session, count = replace_text(EntitySession(document=document), needle)
    assert count == 2
    assert session.document == "start [entity-1] middle abc xyz [entity-1] end"
    assert restore_all(session).document == document


def test_matches_are_non_overlapping_left_to_right() -> None:
    session, count = replace_text(EntitySession(document="aaaaa"), "aa")
    assert count == 2
    assert session.document == "[entity-1][entity-1]a"


def test_stale_selection_still_records_entity() -> None:
    session, count = replace_text(EntitySession(document="nothing here"), "missing")
    assert count == 0
    assert session.document == "nothing here"
    assert session.entities == {"[entity-1]": "missing"}
    assert session.counter == 2


def test_tokens_are_never_reused_within_a_session() -> None:
    session = EntitySession(document="alpha beta gamma delta")
    keys = []
    for word in ("alpha", "beta", "gamma", "delta"):
        keys.append(session.next_key)
        session, _ = replace_text(session, word)
    assert keys == ["[entity-1]", "[entity-2]", "[entity-3]", "[entity-4]"]
    assert session.counter == 5


def test_counter_restarts_after_restore() -> None:
    session, _ = replace_text(EntitySession(document="x y"), "x")
    session, _ = replace_text(session, "y")
    session = restore_all(session)
    session, _ = replace_text(session, "y")
    assert session.document == "x [entity-1]"


def test_nested_selection_round_trips() -> None:
    document = "The cat sat. The cat sat. A cat ran."
    session, _ = replace_text(EntitySession(document=document), "cat")
    session, count = replace_text(session, "The [entity-1] sat")
    assert count == 2
    assert session.document == "[entity-2]. [entity-2]. A [entity-1] ran."
    assert restore_all(session).document == document


def test_selection_inside_placeholder_round_trips() -> None:
    document = "cat and 1 cat"
    session, _ = replace_text(EntitySession(document=document), "cat")
    session, _ = replace_text(session, "1")
    assert session.document == "[entity-[entity-2]] and [entity-2] [entity-[entity-2]]"
    assert restore_all(session).document == document


def test_collision_with_typed_placeholder_is_rejected() -> None:
    session = EntitySession(document="literal [entity-1] and word")
    with pytest.raises(EntityCollisionError):
        replace_text(session, "word")
    assert session.document == "literal [entity-1] and word"
    assert session.entities == {}


def test_manual_edit_keeps_map_and_counter() -> None:
    session, _ = replace_text(EntitySession(document="keep this"), "this")
    edited = edit_document(session, "rewritten [entity-1] text")
    assert edited.entities == {"[entity-1]": "this"}
    assert edited.counter == 2
    assert restore_all(edited).document == "rewritten this text"
    assert edit_document(edited, edited.document) is edited


def test_restore_after_placeholder_deleted_by_hand() -> None:
    session, _ = replace_text(EntitySession(document="a b"), "a")
    session = edit_document(session, "b only")
    assert entity_occurrences(session) == {"[entity-1]": 0}
    restored = restore_all(session)
    assert restored.document == "b only"
    assert restored.entities == {}


@pytest.mark.parametrize(
    ("document", "start", "end", "expected"),
    [
        ("hello world", 0, 5, (0, 5, "hello")),
        ("hello world", 5, 0, (0, 5, "hello")),
        ("hello world", -3, 2, (0, 2, "he")),
        ("hello world", 6, 99, (6, 11, "world")),
        ("", 0, 3, (0, 0, "")),
    ],
)
def test_selection_offsets_follow_substring_rules(document, start, end, expected) -> None:
    selection = Selection.from_document(document, start, end)
    assert (selection.start, selection.end, selection.text) == expected


def test_entity_key_helpers() -> None:
    assert entity_key(7) == "[entity-7]"
    assert entity_number("[entity-12]") == 12
    assert entity_number("[entity-0]") is None
    assert entity_number("[entity-1] ") is None
    assert entity_number("entity-1") is None


def test_replace_literal_ignores_empty_needle() -> None:
    assert replace_literal("abc", "", "x") == ("abc", 0)


def test_session_serialization_round_trip() -> None:
    session, _ = replace_text(EntitySession(document="dog and cat"), "cat")
    session, _ = replace_text(session, "dog")
    payload = serialize_session(session)
    assert payload == {
        "document": "[entity-2] and [entity-1]",
        "entities": {"[entity-1]": "cat", "[entity-2]": "dog"},
        "counter": 3,
    }
    loaded = deserialize_session(payload)
    assert loaded.document == session.document
    assert loaded.entities == session.entities
    assert loaded.counter == 3


def test_entity_map_is_ordered_by_number() -> None:
    session = EntitySession(entities={"[entity-10]": "b", "[entity-2]": "a"}, counter=11)
    assert list(serialize_entity_map(session)) == ["[entity-2]", "[entity-10]"]


def test_deserialize_bare_map_derives_counter() -> None:
    session = deserialize_session({"[entity-3]": "x", "[entity-1]": "y"})
    assert session.document == ""
    assert session.counter == 4


def test_deserialize_raises_counter_below_highest_key() -> None:
    session = deserialize_session({"entities": {"[entity-5]": "x"}, "counter": 2})
    assert session.counter == 6


@pytest.mark.parametrize(
    "payload",
    [
        {"entities": {"entity-1": "x"}},
        {"entities": {"[entity-1]": ""}},
        {"entities": {"[entity-1]": 3}},
        {"entities": ["[entity-1]"]},
        {"entities": {}, "counter": "2"},
        {"entities": {}, "document": 5},
    ],
)
def test_deserialize_rejects_malformed_payloads(payload) -> None:
    with pytest.raises(EntityMapError):
        deserialize_session(payload)


@pytest.mark.parametrize(
    ("text", "offset", "expected"),
    [
        ("plain", 3, 3),
        ("😀 cat", 3, 2),
        ("😀 cat", 0, 0),
        ("😀 cat", -1, 0),
        ("😀 cat", 1, 1),
        ("😀 cat", 99, 5),
        ("é😀😀x", 5, 3),
    ],
)
def test_utf16_offsets_map_to_code_points(text, offset, expected) -> None:
    assert utf16_to_index(text, offset) == expected


def test_selection_from_utf16_offsets() -> None:
    selection = Selection.from_utf16_offsets("😀 cat dog", 3, 6)
    assert (selection.start, selection.end, selection.text) == (2, 5, "cat")
