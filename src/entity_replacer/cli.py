from __future__ import annotations

import argparse
import json
import os
import socket
import sys
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.table import Table

from .editor import EditorConfig, create_editor_app
from .entities import (
    EntityCollisionError,
    EntityMapError,
    EntitySession,
    deserialize_session,
    edit_document,
    entity_occurrences,
    replace_text,
    restore_all,
    serialize_entity_map,
    serialize_session,
)
from .logging_utils import build_uvicorn_log_config, debug_enabled, set_debug_logging


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("entity-replacer")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"entity-replacer {__version__}",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="entity-replacer",
        description=(
            "Swap selected text for [entity-N] placeholders and restore it later. "
            "Subcommands: web, mask, restore."
        ),
    )
    _add_version_flag(ap)
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="entity-replacer web",
        description="Serve the browser editor on a local port.",
    )
    _add_version_flag(ap)
    ap.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1).")
    ap.add_argument("--port", type=int, default=8765, help="Port to listen on (default: 8765).")
    ap.add_argument(
        "-i",
        "--input",
        help="Optional UTF-8 text file to preload into the editor.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Log every replace/restore and enable uvicorn debug logging (or set ENTITY_REPLACER_DEBUG=1).",
    )
    return ap


def build_mask_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="entity-replacer mask",
        description="Replace every occurrence of each selection with a placeholder.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="UTF-8 text file to mask ('-' reads stdin).")
    ap.add_argument(
        "-s",
        "--select",
        action="append",
        default=[],
        metavar="TEXT",
        help="Text to replace; repeat to create several entities in order.",
    )
    ap.add_argument(
        "-o",
        "--output",
        help="Where to write the masked text (default: stdout).",
    )
    ap.add_argument(
        "-e",
        "--entities",
        help=(
            "Session JSON file. Loaded first when it exists so numbering continues, "
            "then rewritten with the updated map."
        ),
    )
    return ap


def build_restore_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="entity-replacer restore",
        description="Replace every placeholder with its original text.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="UTF-8 text file to restore ('-' reads stdin).")
    ap.add_argument(
        "-e",
        "--entities",
        required=True,
        help="Session or entity map JSON written by `entity-replacer mask`.",
    )
    ap.add_argument(
        "-o",
        "--output",
        help="Where to write the restored text (default: stdout).",
    )
    return ap


def _read_input(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    path = Path(value).expanduser()
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    return path.read_text(encoding="utf-8")


def _write_output(text: str, value: str | None) -> None:
    if not value:
        sys.stdout.write(text)
        return
    path = Path(value).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _load_session_file(path: Path) -> EntitySession:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {path}: {exc}") from exc
    try:
        return deserialize_session(data)
    except EntityMapError as exc:
        raise SystemExit(f"{path}: {exc}") from exc


def _print_entity_table(session: EntitySession, console: Console) -> None:
    if not session.entities:
        console.print("No entities yet")
        return
    occurrences = entity_occurrences(session)
    table = Table(title="Entity Map")
    table.add_column("Entity", style="magenta", no_wrap=True)
    table.add_column("Original")
    table.add_column("Uses", justify="right")
    for key, original in serialize_entity_map(session).items():
        table.add_row(key, original, str(occurrences.get(key, 0)))
    console.print(table)


def _run_mask(args: argparse.Namespace) -> int:
    console = Console(stderr=True)
    text = _read_input(args.input_path)
    entities_path = Path(args.entities).expanduser() if args.entities else None

    session = EntitySession()
    if entities_path is not None and entities_path.exists():
        session = _load_session_file(entities_path)
    session = edit_document(session, text)

    if not args.select:
        console.print("No --select values given; text left unchanged.")
    for selected in args.select:
        if not selected:
            console.print("Skipping empty selection.")
            continue
        key = session.next_key
        try:
            session, count = replace_text(session, selected)
        except EntityCollisionError as exc:
            raise SystemExit(str(exc)) from exc
        if not count:
            console.print(f"{key}: {selected!r} not found in the text.")

    _write_output(session.document, args.output)
    if entities_path is not None:
        entities_path.parent.mkdir(parents=True, exist_ok=True)
        entities_path.write_text(
            json.dumps(serialize_session(session), ensure_ascii=False, indent=2) + "\n",
            encoding="utf-8",
        )
    _print_entity_table(session, console)
    return 0


def _run_restore(args: argparse.Namespace) -> int:
    entities_path = Path(args.entities).expanduser()
    if not entities_path.is_file():
        raise SystemExit(f"Entity map not found: {entities_path}")
    text = _read_input(args.input_path)
    session = edit_document(_load_session_file(entities_path), text)
    restored = restore_all(session)
    _write_output(restored.document, args.output)
    return 0


def _run_web(args: argparse.Namespace) -> None:
    set_debug_logging(bool(args.debug) or os.environ.get("ENTITY_REPLACER_DEBUG", "") not in {"", "0"})
    debug = debug_enabled()
    initial_text = _read_input(args.input) if args.input else ""
    app = create_editor_app(EditorConfig(initial_text=initial_text))
    public_ip = _resolve_local_ip(args.host)
    url = f"http://{public_ip}:{args.port}/"
    print(f"Entity Replacer editor: {url}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if debug else "info",
        log_config=build_uvicorn_log_config(debug=debug),
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "web":
        web_args = build_web_parser().parse_args(argv[1:])
        _run_web(web_args)
        return 0
    if argv and argv[0] == "mask":
        mask_args = build_mask_parser().parse_args(argv[1:])
        return _run_mask(mask_args)
    if argv and argv[0] == "restore":
        restore_args = build_restore_parser().parse_args(argv[1:])
        return _run_restore(restore_args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    raise SystemExit(f"Unknown command: {argv[0]}. Use web, mask, or restore.")


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


if __name__ == "__main__":
    raise SystemExit(main())
