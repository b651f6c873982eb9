#!/usr/bin/env python3
"""
CLI entry point for the trk route tracker.

Defines the following commands:
  trk identity DEVICE [--name N --doc D [--phone P] [--secret S] | --select DOC | --list]
  trk track DEVICE FIXLOG [--realtime] [--archive-url URL | --archive-db PATH]
  trk status DEVICE
  trk submit DEVICE --route NAME [--bus-type T] [--occupancy O]
  trk discard DEVICE
  trk export DEVICE [--outdir DIR]
  trk trips
  trk route TRIP_ID
  trk serve [--archive-db PATH] [--port 8000]
  trk version
"""

import json
import sys
from argparse import ArgumentParser, Namespace
from importlib.metadata import PackageNotFoundError, version as _get_version
from pathlib import Path

import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from trk.parsers.fixlog import iter_fixes
from trk.server import create_app
from trk.sources.channel import FixChannel
from trk.sources.replay import start_replay
from trk.storage.dao import ArchiveDAO
from trk.storage.kv import IdentityBook, RecoveryStore
from trk.storage.remote import ArchiveError, ArchiveService, HttpArchive, InvalidTripError
from trk.tracking.config import TrackerConfig
from trk.tracking.session import TrackingSession
from trk.utils.log import get_logger
from trk.utils.validate import Identity, RouteMetadata, SessionSummary

logger = get_logger(__name__)
console = Console()

DEFAULT_ARCHIVE_DB = "trk_archive.sqlite"


def _state_db(device: str) -> str:
    return f"trk_{device}.sqlite"


def _open_archive(archive_url: str | None, archive_db: str | None) -> ArchiveService:
    if archive_url:
        return HttpArchive(archive_url)
    return ArchiveDAO(archive_db or DEFAULT_ARCHIVE_DB)


def _open_session(device: str, archive_url: str | None = None, archive_db: str | None = None) -> TrackingSession:
    store = RecoveryStore(_state_db(device))
    return TrackingSession(store, _open_archive(archive_url, archive_db), TrackerConfig.driving())


def format_elapsed(seconds: int) -> str:
    """
    Render a duration as MM:SS, minutes growing past 59 as needed.
    """
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def _print_summary(summary: SessionSummary) -> None:
    console.print(
        f"time={format_elapsed(summary.elapsed_seconds)} "
        f"points={summary.point_count} stops={summary.stop_count}"
    )
    if summary.last_point is not None:
        p = summary.last_point
        console.print(f"position=({p.lat:.6f}, {p.lng:.6f}) at {p.ts}")
    if summary.error:
        console.print(f"[red]error: {summary.error}[/red]")


def identity(device: str, name: str | None, doc: str | None, phone: str | None,
             secret: str | None, select: str | None, list_all: bool) -> None:
    """
    Register, select or list the identities used on a device.
    """
    book = IdentityBook(RecoveryStore(_state_db(device)))
    if list_all:
        active = book.active()
        for known in book.history():
            marker = "*" if active and active.document_id == known.document_id else " "
            console.print(f"{marker} {known.name} ({known.document_id})")
        return
    if select:
        chosen = book.find(select)
        if chosen is None:
            logger.error("No identity with document id %s on device %s", select, device)
            sys.exit(1)
        book.select(chosen)
        logger.info("Active identity: %s (%s)", chosen.name, chosen.document_id)
        return
    try:
        new = Identity(name=name or "", document_id=doc or "", phone=phone, secret=secret)
    except ValidationError as e:
        logger.error("Invalid identity: %s", e)
        sys.exit(1)
    book.select(new)
    logger.info("Active identity: %s (%s)", new.name, new.document_id)


def track(device: str, fixlog: str, realtime: bool, archive_url: str | None, archive_db: str | None) -> None:
    """
    Run a tracking session fed by a recorded fix log.

    Parameters
    ----------
    device
        Device name, which dictates the local state database file name.
    fixlog
        CSV or JSON-lines file of fixes, "-" for JSON lines on stdin.
    realtime
        Deliver fixes at the pace of their timestamps.
    """
    logger.info("Track: device=%s, fixlog=%s, realtime=%s", device, fixlog, realtime)
    session = _open_session(device, archive_url, archive_db)
    if session.identity is None:
        logger.warning("No identity selected; checkpoints will not be synced")

    channel = FixChannel()
    draft_id = session.start(channel)
    logger.info("Draft id %s", draft_id)
    start_replay(channel, iter_fixes(fixlog), realtime)
    try:
        session.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
    finally:
        session.close()
    _print_summary(session.summary())
    if len(session.trajectory):
        console.print(f"Submit with: trk submit {device} --route NAME")


def status(device: str) -> None:
    """
    Show what is recorded on a device, including a path recovered after a crash.
    """
    store = RecoveryStore(_state_db(device))
    session = TrackingSession(store)
    if session.identity:
        console.print(f"identity={session.identity.name} ({session.identity.document_id})")
    _print_summary(session.summary())


def submit(device: str, route: str, bus_type: str | None, occupancy: str | None,
           archive_url: str | None, archive_db: str | None) -> None:
    """
    Archive the recorded trip and clear it from the device.
    """
    try:
        metadata = RouteMetadata(route_name=route, bus_type=bus_type, occupancy=occupancy)
    except ValidationError as e:
        logger.error("Invalid route details: %s", e)
        sys.exit(1)
    session = _open_session(device, archive_url, archive_db)
    try:
        trip_id = session.submit(metadata)
    except InvalidTripError as e:
        logger.error("Nothing to submit: %s", e)
        sys.exit(1)
    except ArchiveError as e:
        logger.error("Upload failed, the trip is kept for a retry: %s", e)
        sys.exit(1)
    finally:
        session.close()
    logger.info("Trip uploaded with id %s", trip_id)


def discard(device: str) -> None:
    session = TrackingSession(RecoveryStore(_state_db(device)))
    session.clear_path()
    session.close()


def export(device: str, outdir: str | None) -> None:
    """
    Write the identity and recorded path of a device to a JSON file.
    """
    session = TrackingSession(RecoveryStore(_state_db(device)))
    data = session.export_data()
    session.close()
    doc = data["user"]["document_id"] if data["user"] else "anon"
    out = Path(outdir or ".") / f"trk_path_{doc}.json"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.info("Exported %d points to %s", len(data["path"]), out)


def trips(archive_url: str | None, archive_db: str | None) -> None:
    archive = _open_archive(archive_url, archive_db)
    try:
        rows = archive.list_trips()
    except ArchiveError as e:
        logger.error("Could not list trips: %s", e)
        sys.exit(1)
    table = Table("id", "route", "user", "points", "stops", "minutes")
    for t in rows:
        table.add_row(
            t.id, t.route_name, f"{t.user.name} ({t.user.document_id})",
            str(t.point_count), str(t.stop_count), f"{t.duration / 60:.1f}",
        )
    console.print(table)


def route(trip_id: str, archive_url: str | None, archive_db: str | None) -> None:
    archive = _open_archive(archive_url, archive_db)
    try:
        points = archive.fetch_route(trip_id)
    except ArchiveError as e:
        logger.error("Could not fetch route: %s", e)
        sys.exit(1)
    for p in points:
        console.print(json.dumps(p.model_dump(mode="json")))


def serve(archive_db: str | None, port: int) -> None:
    """
    Spin up FastAPI+Uvicorn to serve the trip archive.

    Parameters
    ----------
    archive_db
        Path of the archive SQLite database.
    port
        Port on which to serve HTTP.
    """
    db_path = archive_db or DEFAULT_ARCHIVE_DB
    logger.info("Serve: archive=%s, port=%d", db_path, port)
    app = create_app(db_path)
    uvicorn.run(app, host="127.0.0.1", port=port)


def version() -> None:
    """
    Print the installed trk package version.
    """
    try:
        ver = _get_version("trk")
    except PackageNotFoundError:
        ver = "unknown"
    logger.info("trk version %s", ver)


def _add_archive_args(p: ArgumentParser) -> None:
    grp = p.add_mutually_exclusive_group()
    grp.add_argument("--archive-url", type=str, help="Base URL of a `trk serve` archive.")
    grp.add_argument("--archive-db", type=str, help=f"Local archive database (default {DEFAULT_ARCHIVE_DB}).")


def parse_args(argv: list[str] | None = None) -> Namespace:
    """
    Parse command-line arguments and return the populated namespace.
    """
    parser = ArgumentParser(prog="trk")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # trk identity
    p = subparsers.add_parser("identity", help="Register, select or list identities.")
    p.add_argument("device", type=str, help="Device name.")
    p.add_argument("--name", type=str, help="Full name for a new identity.")
    p.add_argument("--doc", type=str, help="Document id for a new identity.")
    p.add_argument("--phone", type=str, help="Phone number.")
    p.add_argument("--secret", type=str, help="Shared secret.")
    grp = p.add_mutually_exclusive_group()
    grp.add_argument("--select", type=str, metavar="DOC", help="Re-use a known identity.")
    grp.add_argument("--list", dest="list_all", action="store_true", help="List known identities.")

    # trk track
    p = subparsers.add_parser("track", help="Record a trip from a fix log.")
    p.add_argument("device", type=str, help="Device name.")
    p.add_argument("fixlog", type=str, help="CSV or JSON-lines fix log, '-' for stdin.")
    p.add_argument("--realtime", action="store_true", help="Replay at the recorded pace.")
    _add_archive_args(p)

    # trk status
    p = subparsers.add_parser("status", help="Show the recorded path.")
    p.add_argument("device", type=str, help="Device name.")

    # trk submit
    p = subparsers.add_parser("submit", help="Upload the recorded trip.")
    p.add_argument("device", type=str, help="Device name.")
    p.add_argument("--route", type=str, required=True, help="Route name or number.")
    p.add_argument("--bus-type", type=str, help="Vehicle type.")
    p.add_argument("--occupancy", type=str, help="Occupancy level.")
    _add_archive_args(p)

    # trk discard
    p = subparsers.add_parser("discard", help="Throw away the recorded path.")
    p.add_argument("device", type=str, help="Device name.")

    # trk export
    p = subparsers.add_parser("export", help="Export the recorded path as JSON.")
    p.add_argument("device", type=str, help="Device name.")
    p.add_argument("--outdir", type=str, help="Output directory.")

    # trk trips
    p = subparsers.add_parser("trips", help="List archived trips.")
    _add_archive_args(p)

    # trk route
    p = subparsers.add_parser("route", help="Print the route of an archived trip.")
    p.add_argument("trip_id", type=str, help="Trip id.")
    _add_archive_args(p)

    # trk serve
    p = subparsers.add_parser("serve", help="Serve the archive via FastAPI + Uvicorn.")
    p.add_argument("--archive-db", type=str, help=f"Archive database (default {DEFAULT_ARCHIVE_DB}).")
    p.add_argument("--port", type=int, default=8000, help="Port number to serve on.")

    # trk version
    subparsers.add_parser("version", help="Show trk version and exit.")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """
    Entry point: dispatch to the selected subcommand.
    """
    args = parse_args(argv)
    match args.command:
        case "identity":
            if not (args.select or args.list_all or (args.name and args.doc)):
                logger.error("Give --name and --doc, --select DOC or --list")
                sys.exit(2)
            identity(args.device, args.name, args.doc, args.phone, args.secret, args.select, args.list_all)
        case "track":
            track(args.device, args.fixlog, args.realtime, args.archive_url, args.archive_db)
        case "status":
            status(args.device)
        case "submit":
            submit(args.device, args.route, args.bus_type, args.occupancy, args.archive_url, args.archive_db)
        case "discard":
            discard(args.device)
        case "export":
            export(args.device, args.outdir)
        case "trips":
            trips(args.archive_url, args.archive_db)
        case "route":
            route(args.trip_id, args.archive_url, args.archive_db)
        case "serve":
            serve(args.archive_db, args.port)
        case "version":
            version()
        case _:
            sys.exit(1)


if __name__ == "__main__":
    main()
