"""
FileBeam command-line peer.

Usage:
    filebeam-peer send FILE            # print a share code, send FILE once a receiver joins
    filebeam-peer receive CODE         # receive into --out (default ~/Downloads/FileBeam)
    filebeam-relay                     # run the signaling relay
"""

import argparse
import asyncio
import logging
import sys

from filebeam.config import DEFAULT_SAVE_DIR, SIGNALING_URL
from filebeam.errors import FileBeamError
from filebeam.peer.rtc import AiortcPeerConnection
from filebeam.peer.session import PeerSession
from filebeam.peer.signaling_client import SignalingClient

logger = logging.getLogger(__name__)


def _format_eta(seconds: int | None) -> str:
    return "calculating" if seconds is None else f"{seconds}s"


async def _run(args: argparse.Namespace) -> int:
    signaling = SignalingClient(args.server)
    session = PeerSession(signaling, AiortcPeerConnection, save_dir=args.out)
    finished = asyncio.Event()
    outcome = {"ok": False}

    async def on_event(event_type: str, data: dict) -> None:
        if event_type == "progress":
            print(
                f"\r{data['progress_percent']:6.2f}%  ETA {_format_eta(data['eta_seconds'])}   ",
                end="",
                flush=True,
            )
        elif event_type == "state":
            logger.info(data["status"])
        elif event_type == "file_received":
            print(f"\nSaved to {data['path']}")
        elif event_type == "notification":
            if data["type"] in ("success", "error"):
                outcome["ok"] = data["type"] == "success"
                logger.log(
                    logging.INFO if outcome["ok"] else logging.ERROR, data["message"]
                )
                finished.set()

    session.on_event(on_event)

    try:
        if args.command == "send":
            session.select_file(args.file)
        await signaling.connect()
        if args.command == "send":
            code = await session.generate_code()
            print(f"Share code: {code}")
        else:
            await session.connect_with_code(args.code)
        await finished.wait()
    except (FileBeamError, OSError) as e:
        logger.error(str(e))
    finally:
        await session.reset_connection()
        await signaling.close()

    return 0 if outcome["ok"] else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="filebeam-peer", description=__doc__.splitlines()[1])
    parser.add_argument("--server", default=SIGNALING_URL, help="Signaling relay WebSocket URL")
    parser.add_argument("--out", default=DEFAULT_SAVE_DIR, help="Directory for received files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="Share a file")
    send.add_argument("file")

    receive = sub.add_parser("receive", help="Receive a file by share code")
    receive.add_argument("code")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
