"""Entry point: python -m evsource URL"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import EventSourceConfig
from .dispatch.events import ErrorEvent, MessageEvent
from .event_source import EventSource
from .logging_config import setup_logging


def _parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"invalid header {raw!r}, expected 'Name: value'")
    return name.strip(), value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream Server-Sent Events from a URL")
    parser.add_argument("url", help="Event stream URL")
    parser.add_argument("-X", "--method", default="GET", help="HTTP method (default: GET)")
    parser.add_argument(
        "-H", "--header", action="append", type=_parse_header, default=[],
        help="Extra request header, 'Name: value' (repeatable)",
    )
    parser.add_argument("-d", "--data", default=None, help="Request body")
    parser.add_argument("--last-event-id", default="", help="Resume from this event id")
    parser.add_argument("--retry", type=int, default=None, help="Initial reconnect delay in ms")
    parser.add_argument("--max-events", type=int, default=None, help="Exit after N messages")
    parser.add_argument("--event", action="append", default=[], help="Also print this named event (repeatable)")
    parser.add_argument("--json", action="store_true", help="Print events as JSON lines")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    return parser


def format_event(event: MessageEvent, as_json: bool) -> str:
    if as_json:
        return json.dumps({
            "type": event.type,
            "data": event.data,
            "last_event_id": event.last_event_id,
            "origin": event.origin,
        })
    return event.to_bytes().decode()


async def stream(args: argparse.Namespace, config: EventSourceConfig) -> int:
    options: dict[str, object] = {"method": args.method, "headers": dict(args.header)}
    if args.data is not None:
        options["content"] = args.data.encode()

    received = 0
    async with EventSource(
        args.url, config=config, last_event_id=args.last_event_id, **options,
    ) as source:

        def on_message(event: MessageEvent) -> None:
            nonlocal received
            print(format_event(event, args.json), flush=True)
            received += 1
            if args.max_events is not None and received >= args.max_events:
                source.close()

        def on_error(event: ErrorEvent) -> None:
            if event.error is not None:
                print(f"error: {event.message}", file=sys.stderr, flush=True)

        source.onmessage = on_message
        source.onerror = on_error
        for name in args.event:
            source.on(name, on_message)
        await source.wait_closed()
    return 0


def main() -> None:
    args = build_parser().parse_args()

    config = EventSourceConfig()
    if args.retry is not None:
        config.default_retry_ms = args.retry
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_level, config.log_dir)

    try:
        sys.exit(asyncio.run(stream(args, config)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
