"""Example of two bots sharing one webhook server with a graceful shutdown.

Set BOT_TOKENS to a comma separated list of tokens, then press Ctrl+C to stop.
Each bot gets its own /bot<token> path on the same socket.
"""
import os
import signal
import threading
import time

import structlog

from webhook_server import AiohttpWebhookServer, Deadline, MultiTenantWebhookServer

logger = structlog.get_logger(__name__)


def bot_handler(token: str):
    def handle(data: bytes) -> None:
        logger.info("processing_update", bot=token[:6], size=len(data))
        time.sleep(5)  # Simulate long process time
        logger.info("done_update", bot=token[:6])

    return handle


def main():
    tokens = [t for t in os.getenv("BOT_TOKENS", "demo-one,demo-two").split(",") if t]
    address = os.getenv("WEBHOOK_LISTEN_ADDRESS", "localhost:8443")

    shared = MultiTenantWebhookServer(AiohttpWebhookServer())

    # Every bot starts "its own" server; only the first call binds
    for token in tokens:
        shared.register_handler(f"/bot{token}", bot_handler(token))
        shared.start(address)

    done = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: done.set())
    print(f"Handling updates on {address} for {len(tokens)} bots...")

    done.wait()
    print("Stopping...")

    # Every bot stops too; only the first call shuts the socket
    deadline = Deadline(10)
    for _ in tokens:
        shared.stop(deadline)
    print("Done")


if __name__ == "__main__":
    main()
