from .editor import EditorConfig, create_editor_app
from .entities import (
    EntityCollisionError,
    EntityMapError,
    EntitySession,
    Selection,
    deserialize_session,
    edit_document,
    entity_key,
    replace_selection,
    replace_text,
    restore_all,
    serialize_session,
)

__all__ = [
    "EntitySession",
    "Selection",
    "entity_key",
    "replace_selection",
    "replace_text",
    "restore_all",
    "edit_document",
    "serialize_session",
    "deserialize_session",
    "EntityMapError",
    "EntityCollisionError",
    "EditorConfig",
    "create_editor_app",
]
