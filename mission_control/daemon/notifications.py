#!/usr/bin/env python3
"""
Mission Control Notification Daemon

Polls the Mission Control HTTP API for undelivered notifications and pushes
each one into its agent's session through the session gateway.

Delivery is at-least-once: a notification is marked delivered only after
the gateway accepted it. A non-2xx answer or a transport error leaves it
queued for the next poll and bumps its failed-attempt counter.

Usage:
    MISSION_CONTROL_URL=http://localhost:8000 mission-control-daemon
    mission-control-daemon --project-root /path/to/repo --verbose

Environment:
    MISSION_CONTROL_URL          — base URL of the HTTP API (required)
    MISSION_CONTROL_GATEWAY_URL  — session gateway (default http://localhost:3000)
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, Callable

import httpx

from mission_control.engine.config import load_mission_config

logger = logging.getLogger(__name__)


class StoreClient:
    """Query/mutation client for the Mission Control HTTP API."""

    def __init__(self, base_url: str, client: httpx.Client | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.http_client = client or httpx.Client(timeout=timeout)

    def _call(self, kind: str, path: str, args: dict[str, Any] | None = None) -> Any:
        response = self.http_client.post(
            f"{self.base_url}/api/{kind}",
            json={"path": path, "args": args or {}},
        )
        response.raise_for_status()
        return response.json()["value"]

    def query(self, path: str, args: dict[str, Any] | None = None) -> Any:
        return self._call("query", path, args)

    def mutation(self, path: str, args: dict[str, Any] | None = None) -> Any:
        return self._call("mutation", path, args)

    def close(self) -> None:
        self.http_client.close()


class GatewayClient:
    """Pushes messages into agent sessions."""

    def __init__(self, base_url: str, client: httpx.Client | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.http_client = client or httpx.Client(timeout=timeout)

    def send(self, session_key: str, message: str) -> bool:
        """Deliver one message. False when the session did not accept it."""
        try:
            response = self.http_client.post(
                f"{self.base_url}/api/sessions/send",
                json={"sessionKey": session_key, "message": message},
            )
        except httpx.HTTPError as e:
            # Session asleep or gateway down; the notification stays queued
            logger.info("Gateway unreachable for %s: %s", session_key, e)
            return False

        if response.is_success:
            return True
        logger.warning(
            "Gateway rejected delivery to %s: %s %s",
            session_key,
            response.status_code,
            response.reason_phrase,
        )
        return False

    def close(self) -> None:
        self.http_client.close()


class NotificationDaemon:
    """
    Strictly sequential poll-and-deliver loop.

    Each tick fetches daemon:getUndelivered, delivers oldest first, then
    reports successes in one daemon:markManyDelivered call and failures in
    one daemon:recordDeliveryFailure call.
    """

    def __init__(
        self,
        store: StoreClient,
        gateway: GatewayClient,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        session_overrides: dict[str, str] | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.poll_interval = poll_interval
        self._sleep = sleep
        self.session_overrides = dict(session_overrides or {})
        self.sessions: dict[str, str] = {}
        self._running = False

    def load_agent_sessions(self) -> dict[str, str]:
        """Fetch the agent id -> session key map. Overrides are keyed by agent name."""
        sessions = {}
        for entry in self.store.query("daemon:getAgentSessions"):
            sessions[entry["id"]] = self.session_overrides.get(entry["name"], entry["session_key"])
        self.sessions = sessions
        logger.info("Loaded %d agent session(s)", len(sessions))
        return sessions

    def _session_for(self, agent_id: str) -> str | None:
        if agent_id not in self.sessions:
            # Agent added after startup
            self.load_agent_sessions()
        return self.sessions.get(agent_id)

    def poll_once(self) -> dict[str, int]:
        """Run one delivery tick. Returns {"delivered", "failed"} counts."""
        pending = self.store.query("daemon:getUndelivered")
        pending = sorted(pending, key=lambda n: n.get("created_at") or "")

        delivered: list[str] = []
        failed: list[str] = []
        for notification in pending:
            agent_id = notification["mentioned_agent_id"]
            session_key = self._session_for(agent_id)
            if session_key is None:
                logger.error("No session key for agent %s", agent_id)
                failed.append(notification["id"])
                continue

            if self.gateway.send(session_key, notification["content"]):
                logger.info("Delivered %s to %s", notification["id"], session_key)
                delivered.append(notification["id"])
            else:
                failed.append(notification["id"])

        if delivered:
            self.store.mutation("daemon:markManyDelivered", {"ids": delivered})
        if failed:
            self.store.mutation("daemon:recordDeliveryFailure", {"ids": failed})
        return {"delivered": len(delivered), "failed": len(failed)}

    def run(self, max_ticks: int | None = None) -> None:
        """Poll until stop() is called (or max_ticks ticks have run)."""
        self._running = True
        try:
            self.load_agent_sessions()
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Could not load agent sessions: %s", e)

        ticks = 0
        while self._running:
            try:
                counts = self.poll_once()
                if counts["delivered"] or counts["failed"]:
                    logger.info(
                        "Tick: %d delivered, %d queued", counts["delivered"], counts["failed"]
                    )
            except (httpx.HTTPError, KeyError, ValueError) as e:
                logger.error("Poll failed: %s", e)

            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._sleep(self.poll_interval)
        self._running = False

    def stop(self) -> None:
        self._running = False


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="mission-control-daemon",
        description="Deliver Mission Control notifications to agent sessions",
    )
    parser.add_argument(
        "--project-root",
        default=".",
        help="Path to consuming repo root (holds .mission/config.yaml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    config = load_mission_config(Path(args.project_root))
    if not config.store_url:
        logger.error("MISSION_CONTROL_URL not set")
        sys.exit(1)

    store = StoreClient(config.store_url, timeout=config.request_timeout_seconds)
    gateway = GatewayClient(config.gateway_url, timeout=config.request_timeout_seconds)
    daemon = NotificationDaemon(
        store,
        gateway,
        poll_interval=config.poll_interval_seconds,
        session_overrides=config.session_overrides,
    )

    def _shutdown(signum, frame):
        logger.info("Received signal %s, stopping", signum)
        daemon.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info(
        "Notification daemon started: polling %s every %.1fs",
        config.store_url,
        config.poll_interval_seconds,
    )
    try:
        daemon.run()
    finally:
        store.close()
        gateway.close()


if __name__ == "__main__":
    main()
