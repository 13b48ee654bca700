from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Mapping

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse

from .entities import (
    EntityCollisionError,
    EntitySession,
    Selection,
    edit_document,
    entity_occurrences,
    replace_text,
    restore_all,
    serialize_entity_map,
    serialize_session,
)
from .logging_utils import debug_log
from .web_assets import EDITOR_FAVICON_URL


@dataclass(slots=True)
class EditorConfig:
    initial_text: str = ""
    title: str = "Entity Replacer"


INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>__EDITOR_TITLE__</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link rel="icon" type="image/svg+xml" href="__EDITOR_FAVICON__">
  <style>
    :root {
      color-scheme: dark;
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", "Helvetica Neue", sans-serif;
      --bg: #0f0a1e;
      --panel: #1e1b2e;
      --outline: #334155;
      --text: #f1f5f9;
      --muted: #94a3b8;
      --accent: #9333ea;
      --accent-soft: #d8b4fe;
      --copy: #60a5fa;
      --restore: #fb923c;
      --danger: #f87171;
      --radius: 10px;
    }
    * {
      box-sizing: border-box;
    }
    body {
      margin: 0;
      min-height: 100vh;
      color: var(--text);
      background: linear-gradient(135deg, #0f172a, #3b0764 55%, #0f172a);
    }
    .hidden {
      display: none !important;
    }
    .wrap {
      max-width: 72rem;
      margin: 0 auto;
      padding: 1.5rem;
    }
    header {
      display: flex;
      align-items: center;
      justify-content: space-between;
      margin-bottom: 1.5rem;
    }
    header h1 {
      margin: 0 0 0.4rem;
      font-size: 2.1rem;
      font-weight: 600;
    }
    header p {
      margin: 0;
      color: var(--muted);
      font-size: 0.9rem;
    }
    .actions {
      display: flex;
      gap: 0.5rem;
    }
    .actions button {
      padding: 0.55rem 0.8rem;
      border-radius: var(--radius);
      border: 1px solid var(--outline);
      background: var(--panel);
      cursor: pointer;
      font-size: 0.9rem;
    }
    #copy {
      color: var(--copy);
    }
    #restore {
      color: var(--restore);
    }
    .grid {
      display: grid;
      grid-template-columns: 2fr 1fr;
      gap: 1.5rem;
    }
    @media (max-width: 900px) {
      .grid {
        grid-template-columns: 1fr;
      }
    }
    textarea {
      width: 100%;
      height: 24rem;
      padding: 1rem;
      resize: none;
      border-radius: var(--radius);
      border: 1px solid var(--outline);
      background: var(--panel);
      color: var(--text);
      font-family: ui-monospace, "SFMono-Regular", Menlo, monospace;
      font-size: 0.875rem;
    }
    textarea:focus {
      outline: none;
      border-color: var(--accent);
    }
    .panel {
      height: 100%;
      padding: 1rem;
      border-radius: var(--radius);
      border: 1px solid var(--outline);
      background: var(--panel);
    }
    .panel h2 {
      margin: 0 0 0.75rem;
      font-size: 1.1rem;
      font-weight: 600;
    }
    .empty {
      color: var(--muted);
      font-size: 0.875rem;
    }
    .table-wrap {
      max-height: 24rem;
      overflow: auto;
    }
    table {
      width: 100%;
      border-collapse: collapse;
      font-size: 0.875rem;
    }
    th {
      text-align: left;
      padding: 0.5rem;
      color: #c084fc;
      font-weight: 500;
      border-bottom: 1px solid var(--outline);
    }
    td {
      padding: 0.5rem;
      vertical-align: top;
      border-bottom: 1px solid rgba(51,65,85,0.5);
      word-break: break-word;
    }
    td.key {
      font-family: ui-monospace, "SFMono-Regular", Menlo, monospace;
      color: var(--accent-soft);
      white-space: nowrap;
    }
    td.count {
      color: var(--muted);
      text-align: right;
    }
    #menu {
      position: fixed;
      z-index: 50;
      padding: 0.25rem;
      border-radius: var(--radius);
      border: 1px solid var(--accent);
      background: var(--panel);
      box-shadow: 0 20px 40px rgba(0,0,0,0.45);
    }
    #menu button {
      padding: 0.4rem 0.75rem;
      border: none;
      border-radius: 6px;
      background: var(--accent);
      color: white;
      font-size: 0.875rem;
      white-space: nowrap;
      cursor: pointer;
    }
    #status {
      min-height: 1.2rem;
      margin-top: 0.5rem;
      color: var(--muted);
      font-size: 0.8rem;
    }
    #status.error {
      color: var(--danger);
    }
  </style>
</head>
<body>
  <div class="wrap">
    <header>
      <div>
        <h1>__EDITOR_TITLE__</h1>
        <p>Right-click selected text to replace with entity placeholders</p>
      </div>
      <div class="actions">
        <button id="copy" type="button" title="Copy Text">Copy</button>
        <button id="restore" type="button" class="hidden" title="Restore All Entities">Restore</button>
      </div>
    </header>
    <div class="grid">
      <div>
        <textarea id="document" placeholder="Type or paste your text here..."></textarea>
        <div id="status"></div>
      </div>
      <div class="panel">
        <h2>Entity Map</h2>
        <p id="empty" class="empty">No entities yet</p>
        <div id="table-wrap" class="table-wrap hidden">
          <table>
            <thead>
              <tr><th>Entity</th><th>Original</th><th>Uses</th></tr>
            </thead>
            <tbody id="entity-rows"></tbody>
          </table>
        </div>
      </div>
    </div>
  </div>
  <div id="menu" class="hidden">
    <button id="replace" type="button">Replace with Entity</button>
  </div>
  <script>
    (() => {
      const state = {
        entities: {},
        occurrences: {},
        selection: null,
        editTimer: null,
        // Bumped for every request that carries the textarea contents.
        revision: 0,
        // Latest request issued; older responses are ignored.
        seq: 0,
      };
      const textarea = document.getElementById('document');
      const menu = document.getElementById('menu');
      const replaceBtn = document.getElementById('replace');
      const copyBtn = document.getElementById('copy');
      const restoreBtn = document.getElementById('restore');
      const statusEl = document.getElementById('status');
      const emptyEl = document.getElementById('empty');
      const tableWrap = document.getElementById('table-wrap');
      const rowsEl = document.getElementById('entity-rows');

      function renderStatus(text, isError) {
        statusEl.textContent = text || '';
        statusEl.classList.toggle('error', Boolean(isError));
      }

      function sendJSON(method, url, body) {
        state.seq += 1;
        const seq = state.seq;
        return fetch(url, {
          method,
          headers: { 'Content-Type': 'application/json' },
          body: body === undefined ? undefined : JSON.stringify(body),
        }).then((res) => res.json().then((payload) => {
          if (!res.ok) {
            throw new Error(payload.detail || `Request failed: ${res.status}`);
          }
          return seq === state.seq ? payload : null;
        }));
      }

      function documentBody(extra) {
        state.revision += 1;
        return Object.assign({ document: textarea.value, revision: state.revision }, extra || {});
      }

      // Only replace/restore/initial load rewrite the textarea; edit
      // responses refresh the table so typing is never clobbered.
      function applySession(payload, syncDocument) {
        if (!payload) return false;
        const session = payload.session || {};
        if (syncDocument && typeof session.document === 'string' && textarea.value !== session.document) {
          textarea.value = session.document;
        }
        if (Number.isInteger(payload.revision) && payload.revision > state.revision) {
          state.revision = payload.revision;
        }
        state.entities = session.entities || {};
        state.occurrences = payload.occurrences || {};
        renderEntities();
        return true;
      }

      function renderEntities() {
        const keys = Object.keys(state.entities);
        rowsEl.innerHTML = '';
        keys.forEach((key) => {
          const row = document.createElement('tr');
          const keyCell = document.createElement('td');
          keyCell.className = 'key';
          keyCell.textContent = key;
          const valueCell = document.createElement('td');
          valueCell.textContent = state.entities[key];
          const countCell = document.createElement('td');
          countCell.className = 'count';
          countCell.textContent = String(state.occurrences[key] ?? 0);
          row.append(keyCell, valueCell, countCell);
          rowsEl.appendChild(row);
        });
        emptyEl.classList.toggle('hidden', keys.length > 0);
        tableWrap.classList.toggle('hidden', keys.length === 0);
        restoreBtn.classList.toggle('hidden', keys.length === 0);
      }

      function hideMenu() {
        menu.classList.add('hidden');
      }

      function cancelPendingEdit() {
        if (state.editTimer !== null) {
          clearTimeout(state.editTimer);
          state.editTimer = null;
        }
      }

      textarea.addEventListener('input', () => {
        cancelPendingEdit();
        state.editTimer = setTimeout(() => {
          state.editTimer = null;
          sendJSON('PUT', '/api/document', documentBody())
            .then((payload) => applySession(payload, false))
            .catch((err) => renderStatus(err.message, true));
        }, 300);
      });

      textarea.addEventListener('contextmenu', (event) => {
        const start = textarea.selectionStart || 0;
        const end = textarea.selectionEnd || 0;
        if (end > start) {
          event.preventDefault();
          state.selection = { start, end };
          menu.style.left = `${event.clientX}px`;
          menu.style.top = `${event.clientY}px`;
          menu.classList.remove('hidden');
        } else {
          state.selection = null;
          hideMenu();
        }
      });

      document.addEventListener('click', hideMenu);
      menu.addEventListener('click', (event) => event.stopPropagation());

      replaceBtn.addEventListener('click', () => {
        const selection = state.selection;
        hideMenu();
        if (!selection) return;
        cancelPendingEdit();
        sendJSON('POST', '/api/replace', documentBody({ start: selection.start, end: selection.end }))
          .then((payload) => {
            if (!applySession(payload, true)) return;
            const replaced = payload.replaced;
            renderStatus(replaced ? `${replaced.key} replaced ${replaced.occurrences} occurrence(s).` : '');
          })
          .catch((err) => renderStatus(err.message, true));
      });

      restoreBtn.addEventListener('click', () => {
        cancelPendingEdit();
        sendJSON('POST', '/api/restore', documentBody())
          .then((payload) => {
            if (applySession(payload, true)) renderStatus('All entities restored.');
          })
          .catch((err) => renderStatus(err.message, true));
      });

      copyBtn.addEventListener('click', () => {
        if (!navigator.clipboard) {
          renderStatus('Clipboard is not available in this browser.', true);
          return;
        }
        navigator.clipboard.writeText(textarea.value).then(() => {
          copyBtn.textContent = 'Copied!';
          setTimeout(() => { copyBtn.textContent = 'Copy'; }, 2000);
        }).catch(() => renderStatus('Copy failed.', true));
      });

      sendJSON('GET', '/api/session')
        .then((payload) => applySession(payload, true))
        .catch((err) => renderStatus(err.message, true));
    })();
  </script>
</body>
</html>
"""


def _session_payload(session: EntitySession, **extra: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "session": serialize_session(session),
        "occurrences": entity_occurrences(session),
    }
    payload.update(extra)
    return payload


def _payload_document(payload: Mapping[str, object], *, required: bool = False) -> str | None:
    document = payload.get("document")
    if document is None:
        if required:
            raise HTTPException(status_code=400, detail="document is required.")
        return None
    if not isinstance(document, str):
        raise HTTPException(status_code=400, detail="document must be a string.")
    return document


def _payload_offset(payload: Mapping[str, object], name: str) -> int:
    value = payload.get(name)
    if not isinstance(value, int) or isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{name} must be an integer.")
    return value


def _payload_revision(payload: Mapping[str, object]) -> int | None:
    value = payload.get("revision")
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise HTTPException(status_code=400, detail="revision must be an integer.")
    return value


def create_editor_app(config: EditorConfig | None = None) -> FastAPI:
    config = config or EditorConfig()

    app = FastAPI(title=config.title)
    app.state.config = config
    app.state.session = EntitySession(document=config.initial_text)
    # Highest client revision whose document has been applied.
    app.state.revision = 0
    session_lock = threading.Lock()

    def _current() -> EntitySession:
        return app.state.session

    def _store(session: EntitySession) -> EntitySession:
        app.state.session = session
        return session

    def _apply_edit(document: str | None, revision: int | None) -> EntitySession:
        session = _current()
        if document is None:
            return session
        if revision is not None:
            if revision < app.state.revision:
                debug_log(f"dropping stale document revision {revision} < {app.state.revision}")
                return session
            app.state.revision = revision
        return _store(edit_document(session, document))

    def _payload(session: EntitySession, **extra: object) -> dict[str, object]:
        return _session_payload(session, revision=app.state.revision, **extra)

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        html = INDEX_HTML.replace("__EDITOR_FAVICON__", EDITOR_FAVICON_URL)
        return HTMLResponse(html.replace("__EDITOR_TITLE__", config.title))

    @app.get("/api/session")
    def api_session() -> JSONResponse:
        with session_lock:
            payload = _payload(_current())
        return JSONResponse(payload)

    @app.get("/api/entities")
    def api_entities() -> JSONResponse:
        with session_lock:
            session = _current()
        return JSONResponse(serialize_entity_map(session))

    @app.put("/api/document")
    def api_update_document(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        document = _payload_document(payload, required=True)
        revision = _payload_revision(payload)
        with session_lock:
            response = _payload(_apply_edit(document, revision))
        return JSONResponse(response)

    @app.post("/api/replace")
    def api_replace(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        document = _payload_document(payload)
        revision = _payload_revision(payload)
        start = _payload_offset(payload, "start")
        end = _payload_offset(payload, "end")
        with session_lock:
            session = _apply_edit(document, revision)
            # Textarea offsets count UTF-16 code units.
            selection = Selection.from_utf16_offsets(session.document, start, end)
            if selection.is_empty:
                debug_log(f"ignoring empty selection {start}:{end}")
                return JSONResponse(_payload(session, replaced=None))
            key = session.next_key
            try:
                session, occurrences = replace_text(session, selection.text)
            except EntityCollisionError as exc:
                raise HTTPException(status_code=409, detail=str(exc)) from exc
            _store(session)
            response = _payload(
                session,
                replaced={
                    "key": key,
                    "text": selection.text,
                    "start": start,
                    "end": end,
                    "occurrences": occurrences,
                },
            )
        return JSONResponse(response)

    @app.post("/api/restore")
    def api_restore(payload: dict[str, object] | None = Body(None)) -> JSONResponse:
        if payload is not None and not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        payload = payload or {}
        document = _payload_document(payload)
        revision = _payload_revision(payload)
        with session_lock:
            session = _store(restore_all(_apply_edit(document, revision)))
            response = _payload(session)
        return JSONResponse(response)

    return app


__all__ = ["EditorConfig", "INDEX_HTML", "create_editor_app"]
