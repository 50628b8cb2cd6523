"""
Headless QR host: keeps an event's rotating code alive from a terminal.

    python scripts/qr_host.py <event_id> [--tab-id ID] [--keep-active]

Talks to the API over HTTP. Run it on two machines and one becomes the host
while the other shows the same code as a viewer.
"""
import argparse
import asyncio
import os
import signal
import sys
from datetime import datetime

import httpx
from dotenv import load_dotenv

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from attendly.services.host_agent import HttpHostBackend, QrHostAgent  # noqa: E402
from attendly.utils.logging import configure_logging, get_logger  # noqa: E402

load_dotenv()

SERVER_IP = os.getenv("SERVER_IP", "127.0.0.1")
SERVER_PORT = os.getenv("SERVER_PORT", "8000")
API_URL = os.getenv("ATTENDLY_API_URL", f"http://{SERVER_IP}:{SERVER_PORT}")

logger = get_logger("qr_host")


def show_token(token: str) -> None:
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {token}")


async def main(event_id: str, tab_id: str | None, keep_active: bool) -> None:
    async with httpx.AsyncClient(base_url=API_URL, timeout=5.0) as client:
        backend = HttpHostBackend(client, stop_on_release=not keep_active)
        agent = QrHostAgent(backend, event_id, tab_id=tab_id, on_token=show_token)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, agent.stop)
            except NotImplementedError:
                # Windows: Ctrl+C arrives as KeyboardInterrupt instead.
                pass

        logger.info("Tab %s watching event %s on %s", agent.tab_id, event_id, API_URL)
        try:
            await agent.run()
        finally:
            release = agent.stop()
            if release is not None:
                # Give the release a moment before the client closes.
                await asyncio.wait([release], timeout=2.0)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Host an event's rotating QR code")
    parser.add_argument("event_id")
    parser.add_argument("--tab-id", default=None)
    parser.add_argument(
        "--keep-active",
        action="store_true",
        help="Release the lease on exit without stopping the event",
    )
    args = parser.parse_args()

    configure_logging(log_file=None)
    try:
        asyncio.run(main(args.event_id, args.tab_id, args.keep_active))
    except KeyboardInterrupt:
        pass
