"""CLI entrypoint for aim-pick."""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path

from aimpick.bootstrap import RunConfig, load_run_config
from aimpick.constants import CAPTURE_LOG_NAME, DEFAULT_START_URL
from aimpick.models import SelectionProfile, SelectionProfileItem
from aimpick.profiles import (
    ProfileLibrary,
    ProfileNameError,
    ensure_default_profiles,
    load_url_profiles,
    save_selection_profile,
    validate_profile_name,
)
from aimpick.selector_synth import selections_from_html
from aimpick.session import SessionAbortedError, run_install, run_interactive
from aimpick.storage import status_payload, tail_lines


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = load_run_config()
    library = ProfileLibrary(Path(args.profiles_dir) if args.profiles_dir else config.profiles_dir)

    if args.command == "pick":
        pick_command(args, config=config, library=library)
        return
    if args.command == "install":
        install_command(args, config=config, library=library)
        return
    if args.command == "profiles":
        profiles_command(library)
        return
    if args.command == "profile-from-html":
        profile_from_html_command(
            Path(args.html_file),
            name=args.name,
            query=args.query,
            notes=args.notes,
            base_url=args.base_url,
            library=library,
        )
        return
    if args.command == "serve-bridge":
        serve_bridge_command(library, port=args.port, profile_name=args.profile)
        return
    if args.command == "status":
        print(json.dumps(status_payload(config.captures_dir), indent=2, ensure_ascii=False))
        return
    if args.command == "logs":
        logs_command(args.tail, captures_dir=config.captures_dir)
        return

    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aimpick", description="Interactive web element picker and capture tool.")
    parser.add_argument(
        "--profiles-dir",
        default="",
        help="Profile directory (default: $AIMPICK_PROFILES_DIR or ./profiles).",
    )
    subparsers = parser.add_subparsers(dest="command")

    pick_parser = subparsers.add_parser("pick", help="Open a page and pick elements interactively")
    pick_parser.add_argument("url", nargs="?", default="")
    pick_parser.add_argument("--profile", default="default", help="Browser profile name.")
    pick_parser.add_argument("--video", action="store_true", help="Record a session video.")
    pick_parser.add_argument("--headless", action="store_true")

    install_parser = subparsers.add_parser("install", help="Export a saved selection profile against a page")
    install_parser.add_argument("url", type=str)
    install_parser.add_argument("--selection-profile", required=True)
    install_parser.add_argument("--index", type=int, default=0, help="1-based item index; 0 exports all items.")
    install_parser.add_argument("--profile", default="default", help="Browser profile name.")
    install_parser.add_argument("--video", action="store_true")
    install_parser.add_argument("--headless", action="store_true")

    subparsers.add_parser("profiles", help="List browser, URL and selection profiles")

    html_parser = subparsers.add_parser(
        "profile-from-html",
        help="Build a selection profile from a saved HTML page",
    )
    html_parser.add_argument("html_file", type=str)
    html_parser.add_argument("--name", required=True)
    html_parser.add_argument("--query", default="img, video, a[href]", help="CSS query selecting the elements.")
    html_parser.add_argument("--notes", default="")
    html_parser.add_argument("--base-url", default="")

    bridge_parser = subparsers.add_parser("serve-bridge", help="Serve bridge operations over local HTTP")
    bridge_parser.add_argument("--port", type=int, default=8765)
    bridge_parser.add_argument("--profile", default="default")

    subparsers.add_parser("status", help="Show latest capture status")

    logs_parser = subparsers.add_parser("logs", help="Tail the latest capture log")
    logs_parser.add_argument("--tail", type=int, default=200)
    return parser


def pick_command(args: argparse.Namespace, *, config: RunConfig, library: ProfileLibrary) -> None:
    url = str(args.url or "").strip() or _default_start_url(library)
    try:
        outcome = run_interactive(
            url,
            profile_name=args.profile,
            video=args.video,
            headless=args.headless,
            config=config,
            library=library,
        )
    except SessionAbortedError as exc:
        raise SystemExit(f"Session aborted: {exc}")
    print(f"Result: {outcome.result}")


def install_command(args: argparse.Namespace, *, config: RunConfig, library: ProfileLibrary) -> None:
    try:
        validate_profile_name(args.selection_profile)
    except ProfileNameError as exc:
        raise SystemExit(f"Invalid selection profile: {exc}")
    try:
        outcome = run_install(
            args.url.strip(),
            selection_profile=args.selection_profile.strip(),
            sel_index=max(0, args.index),
            profile_name=args.profile,
            video=args.video,
            headless=args.headless,
            config=config,
            library=library,
        )
    except SessionAbortedError as exc:
        raise SystemExit(f"Session aborted: {exc}")
    print(f"Result: {outcome.result} ({outcome.selections} items)")


def profiles_command(library: ProfileLibrary) -> None:
    ensure_default_profiles(library)
    payload = {
        "browserProfiles": library.browser.list(),
        "urlProfiles": load_url_profiles(library),
        "selectionProfiles": library.selections.list(),
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def profile_from_html_command(
    html_file: Path,
    *,
    name: str,
    query: str,
    notes: str,
    base_url: str,
    library: ProfileLibrary,
) -> None:
    try:
        profile_name = validate_profile_name(name)
    except ProfileNameError as exc:
        raise SystemExit(f"Invalid profile name: {exc}")
    if not html_file.is_file():
        raise SystemExit(f"HTML file not found: {html_file}")
    html = html_file.read_text(encoding="utf-8", errors="replace")
    try:
        selections = selections_from_html(html, query, base_url=base_url)
    except Exception as exc:
        raise SystemExit(f"Invalid query {query!r}: {exc}")
    if not selections:
        raise SystemExit(f"No elements matched {query!r}")
    profile = SelectionProfile(
        name=profile_name,
        created_at=datetime.now(timezone.utc).isoformat(),
        notes=notes,
        items=[
            SelectionProfileItem(selector=item.selector, tag=item.tag, kind=item.kind, text=item.text)
            for item in selections
        ],
    )
    size = save_selection_profile(library, profile)
    print(f"Saved selection profile {profile_name} ({len(profile.items)} items, {size} bytes)")


def serve_bridge_command(library: ProfileLibrary, *, port: int, profile_name: str) -> None:
    from aimpick.bridge_server import serve_bridge
    from aimpick.web_bridge import HostBridge

    ensure_default_profiles(library)
    bridge = HostBridge(library, current_browser_profile=profile_name)
    serve_bridge(bridge, port=port)


def logs_command(tail_count: int, *, captures_dir: Path) -> None:
    payload = status_payload(captures_dir)
    if payload.get("status") == "no-captures":
        raise SystemExit("No captures available yet.")
    capture_dir = Path(payload["capture_dir"])
    print("\n".join(tail_lines(capture_dir / CAPTURE_LOG_NAME, tail_count)))


def _default_start_url(library: ProfileLibrary) -> str:
    for entry in load_url_profiles(library):
        if isinstance(entry, dict):
            url = str(entry.get("url") or "").strip()
            if url:
                return url
    return DEFAULT_START_URL


if __name__ == "__main__":
    main()
