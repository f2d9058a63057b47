"""Command-line interface for screencoach.

Provides the main entry point for running the coaching loop, sending a
one-off chat message, managing API keys, and serving the reference
backend.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from screencoach.backend.client import InsightBackend
    from screencoach.coach.failover import FailoverRunner
    from screencoach.credentials.pool import CredentialPool
    from screencoach.credentials.quota import QuotaGuard
    from screencoach.storage.state import LocalStateStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="screencoach",
        description="Screen coaching assistant with multi-provider failover",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/screencoach.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    coach_parser = subparsers.add_parser("coach", help="Watch the screen and coach toward a goal")
    coach_parser.add_argument(
        "--goal", type=str, required=True,
        help="What you are trying to get done",
    )
    coach_parser.add_argument(
        "--duration", type=float, default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    chat_parser = subparsers.add_parser("chat", help="Ask one question about your screen")
    chat_parser.add_argument("message", type=str, help="Message to send")
    chat_parser.add_argument("--goal", type=str, default="", help="Goal context for the answer")
    chat_parser.add_argument("--file", type=Path, default=None, help="Attach a file or image")
    chat_parser.add_argument(
        "--no-screen", action="store_true",
        help="Do not attach a screenshot",
    )

    keys_parser = subparsers.add_parser("keys", help="Manage stored API keys")
    keys_sub = keys_parser.add_subparsers(dest="keys_command", required=True)
    set_parser = keys_sub.add_parser("set", help="Replace the stored key list")
    set_parser.add_argument(
        "keys", nargs="*",
        help="Keys separated by spaces, commas or newlines (read from stdin if omitted)",
    )
    keys_sub.add_parser("show", help="List stored keys (masked)")
    keys_sub.add_parser("clear", help="Remove all stored keys")

    subparsers.add_parser("quota", help="Show today's usage against the daily quota")

    backend_parser = subparsers.add_parser("backend", help="Serve the reference insight backend")
    backend_parser.add_argument("--host", type=str, default=None)
    backend_parser.add_argument("--port", type=int, default=None)

    return parser.parse_args(argv)


@dataclass
class Runtime:
    """Components shared by the coach and chat commands."""

    store: LocalStateStore
    pool: CredentialPool
    quota: QuotaGuard
    runner: FailoverRunner
    backend: InsightBackend


def _build_runtime(settings) -> Runtime:
    from screencoach.backend.client import InsightBackend
    from screencoach.coach.failover import FailoverRunner, build_provider_registry
    from screencoach.credentials.pool import CredentialPool, parse_credentials
    from screencoach.credentials.quota import QuotaGuard

    store = _load_store(settings)
    pool = CredentialPool.load(store)
    if pool.is_empty and settings.api_keys:
        pool.replace(parse_credentials(settings.api_keys))
        logger.info("Seeded %d key(s) from configuration", len(pool))

    quota = QuotaGuard(
        store,
        max_quota=settings.quota.max_quota,
        safety_limit=settings.quota.safety_limit,
    )
    runner = FailoverRunner(
        pool,
        quota,
        build_provider_registry(settings),
        retry_backoff=settings.coach.retry_backoff,
    )
    backend = InsightBackend(settings.backend.base_url, timeout=settings.backend.timeout)
    return Runtime(store=store, pool=pool, quota=quota, runner=runner, backend=backend)


def _load_store(settings):
    from screencoach.storage.state import LocalStateStore

    return LocalStateStore(settings.storage.state_path).load()


def _build_capture(settings):
    from screencoach.capture.screen import ScreenCapture

    cap = settings.capture
    return ScreenCapture(
        monitor_index=cap.monitor_index,
        change_threshold=cap.change_threshold,
        pixel_delta=cap.pixel_delta,
        jpeg_quality=cap.jpeg_quality,
        max_dimension=cap.max_dimension,
    )


async def _run_coach(settings, args) -> int:
    """Run the analysis loop until interrupted or the duration elapses."""
    from screencoach.capture.base import CaptureError
    from screencoach.coach.analysis import AnalysisOrchestrator

    runtime = _build_runtime(settings)
    halted = asyncio.Event()

    def show(outcome) -> None:
        print(f"[{outcome.state.value}] {outcome.micro_assist}")
        if outcome.automation_suggestion:
            print(f"  shortcut: {outcome.automation_suggestion}")

    def reconfigure(reason: str) -> None:
        print(f"\n{reason}\nRun `screencoach keys set ...` to add keys.", file=sys.stderr)
        halted.set()

    coach = AnalysisOrchestrator(
        _build_capture(settings),
        runtime.runner,
        backend=runtime.backend,
        goal=args.goal,
        cycle_interval=settings.coach.cycle_interval,
        frame_retry_delay=settings.coach.frame_retry_delay,
        history_limit=settings.coach.history_limit,
        on_outcome=show,
        on_status=lambda message: logger.info("Status: %s", message),
        on_reconfigure_needed=reconfigure,
    )

    async with runtime.backend:
        await coach.load_history()
        try:
            await coach.start()
        except CaptureError as e:
            print(f"Cannot capture the screen ({e.kind.value}): {e}", file=sys.stderr)
            return 1
        try:
            await asyncio.wait_for(halted.wait(), timeout=args.duration)
        except asyncio.TimeoutError:
            pass
        finally:
            await coach.stop()
            await coach.wait_idle()

    print(f"\nUsage today: {runtime.quota.usage()}/{runtime.quota.max_quota}")
    return 1 if halted.is_set() else 0


async def _run_chat(settings, args) -> int:
    """Send one chat message and print the reply."""
    from screencoach.capture.base import CaptureError
    from screencoach.coach.chat import ChatOrchestrator
    from screencoach.domain.models import FileAttachment

    runtime = _build_runtime(settings)
    attachment = FileAttachment.from_path(args.file) if args.file else None

    capture = None
    if not args.no_screen:
        capture = _build_capture(settings)
        try:
            await capture.start_capture()
        except CaptureError as e:
            logger.warning("Sending without a screenshot: %s", e)
            capture = None

    reasons: list[str] = []
    chat = ChatOrchestrator(
        runtime.runner,
        frame_source=capture,
        backend=runtime.backend,
        goal=args.goal,
        on_reconfigure_needed=reasons.append,
    )
    try:
        async with runtime.backend:
            await chat.load_history()
            reply = await chat.send(args.message, attachment=attachment)
            await chat.background.drain()
    finally:
        if capture is not None:
            await capture.stop_capture()

    if reply is None:
        print(reasons[0] if reasons else "Nothing to send.", file=sys.stderr)
        return 1
    print(reply.text)
    return 1 if reasons else 0


def _keys(settings, args) -> int:
    from screencoach.credentials.pool import CredentialPool, parse_credentials

    pool = CredentialPool.load(_load_store(settings))

    if args.keys_command == "set":
        text = " ".join(args.keys) if args.keys else sys.stdin.read()
        values = parse_credentials(text)
        if not values:
            print("No keys given.", file=sys.stderr)
            return 1
        pool.replace(values)
        print(f"Stored {len(pool)} key(s).")
    elif args.keys_command == "clear":
        pool.replace([])
        print("Cleared stored keys.")
    else:
        if pool.is_empty:
            print("No keys stored.")
        for index, credential in enumerate(pool.credentials):
            marker = "*" if index == pool.current_index else " "
            print(f"{marker} {index}: {credential.provider_kind.value:<7} {credential.masked}")
    return 0


def _quota(settings) -> int:
    from screencoach.credentials.quota import QuotaGuard

    quota = QuotaGuard(
        _load_store(settings),
        max_quota=settings.quota.max_quota,
        safety_limit=settings.quota.safety_limit,
    )
    usage = quota.usage()
    print(f"Used today: {usage}/{quota.max_quota} (safety limit {quota.safety_limit})")
    print(f"Remaining: {quota.remaining()}")
    if quota.is_safety_locked():
        print("Analysis is paused until tomorrow.")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the screencoach CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from screencoach.config.settings import load_settings
    from screencoach.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    exit_code = 0
    if args.command == "coach":
        logger.info("Starting coach with goal: %s", args.goal)
        try:
            exit_code = asyncio.run(_run_coach(settings, args))
        except KeyboardInterrupt:
            exit_code = 0

    elif args.command == "chat":
        exit_code = asyncio.run(_run_chat(settings, args))

    elif args.command == "keys":
        exit_code = _keys(settings, args)

    elif args.command == "quota":
        exit_code = _quota(settings)

    elif args.command == "backend":
        logger.info("Starting reference backend")
        from screencoach.backend.server import create_app
        import uvicorn
        be = settings.backend
        app = create_app(
            history_limit=be.history_limit,
            chat_history_limit=be.chat_history_limit,
            context_top_k=be.context_top_k,
        )
        uvicorn.run(
            app,
            host=args.host or be.host,
            port=args.port or be.port,
        )

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
