# backend/client.py
import argparse
import asyncio
from dataclasses import replace

from identity import CookieFileIdentityStore
from mealbot_logging import get_logger
from settings import get_settings
from sync_controller import SyncController
from transport import HttpxTransport

logger = get_logger(__name__)


def print_rows(rows):
    print("\n".join(rows) if rows else "(no one else on the ledger)", flush=True)


async def run(settings, whoami=None):
    transport = HttpxTransport(settings.base_url, timeout=settings.request_timeout)
    store = CookieFileIdentityStore(settings.identity_file)
    if whoami is not None:
        store.persist(whoami)

    controller = SyncController(transport, store, settings=settings, on_render=print_rows)
    try:
        await controller.start()
        await asyncio.Event().wait()
    finally:
        controller.stop()
        await transport.aclose()


def main(argv=None):
    ap = argparse.ArgumentParser(description="Follow the mealbot ledger from the terminal")
    ap.add_argument("--server", help="Base URL of the mealbot server (default MEALBOT_BASE_URL)")
    ap.add_argument("--whoami", type=int, help="User id to act as; remembered for later runs")
    ap.add_argument("--interval", type=float, help="Seconds between refreshes")
    args = ap.parse_args(argv)

    settings = get_settings()
    if args.server:
        settings = replace(settings, base_url=args.server)
    if args.interval:
        settings = replace(settings, poll_interval=args.interval)

    logger.info("client_starting", server=settings.base_url, interval=settings.poll_interval)
    try:
        asyncio.run(run(settings, args.whoami))
    except KeyboardInterrupt:
        logger.info("client_stopped")


if __name__ == "__main__":
    main()
