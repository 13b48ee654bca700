from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping

from .logging_utils import debug_log

__all__ = [
    "ENTITY_KEY_RE",
    "EntityCollisionError",
    "EntityMapError",
    "EntitySession",
    "Selection",
    "edit_document",
    "entity_key",
    "entity_number",
    "entity_occurrences",
    "replace_literal",
    "replace_selection",
    "replace_text",
    "restore_all",
    "serialize_entity_map",
    "utf16_to_index",
    "serialize_session",
    "deserialize_session",
]

ENTITY_KEY_RE = re.compile(r"\[entity-([1-9][0-9]*)\]")


class EntityMapError(ValueError):
    """Raised when an entity map payload is malformed."""


class EntityCollisionError(ValueError):
    """Raised when the next placeholder token already occurs in the document."""


@dataclass(slots=True)
class Selection:
    start: int
    end: int
    text: str

    @classmethod
    def from_document(cls, document: str, start: int, end: int) -> "Selection":
        """
        Slice ``document`` using substring semantics: offsets are clamped to
        the document bounds and swapped when reversed.
        """
        length = len(document)
        lo = min(max(int(start), 0), length)
        hi = min(max(int(end), 0), length)
        if lo > hi:
            lo, hi = hi, lo
        return cls(start=lo, end=hi, text=document[lo:hi])

    @classmethod
    def from_utf16_offsets(cls, document: str, start: int, end: int) -> "Selection":
        """Like ``from_document`` but with offsets counted in UTF-16 code units (browser textareas)."""
        return cls.from_document(document, utf16_to_index(document, start), utf16_to_index(document, end))

    @property
    def is_empty(self) -> bool:
        return not self.text


@dataclass(slots=True)
class EntitySession:
    """
    Document text plus the placeholder map built up by successive replaces.

    Sessions are treated as values: every operation in this module returns a
    new session and leaves its input untouched.
    """

    document: str = ""
    entities: dict[str, str] = field(default_factory=dict)
    counter: int = 1

    @property
    def next_key(self) -> str:
        return entity_key(self.counter)


def entity_key(counter: int) -> str:
    return f"[entity-{counter}]"


def entity_number(key: str) -> int | None:
    match = ENTITY_KEY_RE.fullmatch(key)
    if match is None:
        return None
    return int(match.group(1))


def utf16_to_index(text: str, offset: int) -> int:
    """
    Map a UTF-16 code-unit offset onto an index into ``text``.

    Characters outside the BMP take two code units; an offset that lands
    between the halves of such a pair rounds up past the character.
    """
    offset = int(offset)
    if offset <= 0:
        return 0
    units = 0
    for index, ch in enumerate(text):
        if units >= offset:
            return index
        units += 2 if ord(ch) > 0xFFFF else 1
    return len(text)


def replace_literal(text: str, needle: str, replacement: str) -> tuple[str, int]:
    """Replace every non-overlapping occurrence of ``needle``; return the count."""
    if not needle:
        return text, 0
    count = text.count(needle)
    if not count:
        return text, 0
    return text.replace(needle, replacement), count


def replace_text(session: EntitySession, selected: str) -> tuple[EntitySession, int]:
    """
    Swap every occurrence of ``selected`` for a fresh placeholder.

    Returns the new session and the number of occurrences replaced. An empty
    selection returns ``session`` itself with a count of zero.
    """
    if not selected:
        return session, 0
    key = session.next_key
    if key in session.document:
        raise EntityCollisionError(
            f"Document already contains {key}; edit it out before replacing."
        )
    document, count = replace_literal(session.document, selected, key)
    entities = dict(session.entities)
    entities[key] = selected
    debug_log(f"{key} <- {selected!r} ({count} occurrence(s))")
    return EntitySession(document=document, entities=entities, counter=session.counter + 1), count


def replace_selection(session: EntitySession, selection: Selection) -> EntitySession:
    new_session, _ = replace_text(session, selection.text)
    return new_session


def restore_all(session: EntitySession) -> EntitySession:
    """Put every original back and reset the map and counter."""
    document = session.document
    # Newest first, so placeholders nested inside later selections unwind.
    ordered = sorted(
        session.entities.items(),
        key=lambda item: entity_number(item[0]) or 0,
        reverse=True,
    )
    restored = 0
    for key, original in ordered:
        document, count = replace_literal(document, key, original)
        restored += count
    debug_log(f"restored {len(ordered)} entities ({restored} occurrence(s))")
    return EntitySession(document=document, entities={}, counter=1)


def edit_document(session: EntitySession, document: str) -> EntitySession:
    if document == session.document:
        return session
    return EntitySession(document=document, entities=dict(session.entities), counter=session.counter)


def entity_occurrences(session: EntitySession) -> dict[str, int]:
    return {key: session.document.count(key) for key in session.entities}


def serialize_entity_map(session: EntitySession) -> dict[str, str]:
    ordered = sorted(session.entities, key=lambda key: entity_number(key) or 0)
    return {key: session.entities[key] for key in ordered}


def serialize_session(session: EntitySession) -> dict[str, object]:
    return {
        "document": session.document,
        "entities": serialize_entity_map(session),
        "counter": session.counter,
    }


def deserialize_session(data: Mapping[str, object]) -> EntitySession:
    """
    Build a session from ``serialize_session`` output.

    A bare ``{token: original}`` mapping is accepted too, in which case the
    document is empty. The counter is raised to one past the highest token
    number when it is missing or too small.
    """
    if not isinstance(data, Mapping):
        raise EntityMapError("Entity payload must be a JSON object.")
    if "entities" in data:
        raw_entities = data.get("entities")
        document = data.get("document", "")
        counter_value = data.get("counter")
    else:
        raw_entities = data
        document = ""
        counter_value = None
    if not isinstance(document, str):
        raise EntityMapError("document must be a string.")
    if not isinstance(raw_entities, Mapping):
        raise EntityMapError("entities must be an object of placeholder -> original text.")

    entities: dict[str, str] = {}
    highest = 0
    for key, original in raw_entities.items():
        number = entity_number(key) if isinstance(key, str) else None
        if number is None:
            raise EntityMapError(f"Invalid placeholder key: {key!r}")
        if not isinstance(original, str) or not original:
            raise EntityMapError(f"Original text for {key} must be a non-empty string.")
        entities[key] = original
        highest = max(highest, number)

    if counter_value is None:
        counter = highest + 1
    elif isinstance(counter_value, int) and not isinstance(counter_value, bool):
        counter = max(counter_value, highest + 1)
    else:
        raise EntityMapError("counter must be an integer.")
    return EntitySession(document=document, entities=entities, counter=counter)
