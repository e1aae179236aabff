#!/usr/bin/env python3
"""
Neura to MQTT Bridge

Logs into the web interface of a Neura heat pump, reads the configured
status values from its pages and publishes each one to MQTT. One run is
one cycle; schedule it externally (cron, systemd timer) or set
POLL_INTERVAL to let the bridge repeat it.

Usage:
    python neura_mqtt_bridge.py

Environment variables:
    NEURA_HOST - Heat pump address (host or host:port)
    NEURA_USERNAME - Web interface user
    NEURA_PASSWORD - Web interface password
    MQTT_HOST - MQTT broker host (default: localhost)
    MQTT_PORT - MQTT broker port (default: 1883)
    MQTT_USERNAME - MQTT username (optional)
    MQTT_PASSWORD - MQTT password (optional)
    MQTT_RETAIN - Publish retained messages: true/false (default: false)
    MQTT_CLIENT_ID - MQTT client id (default: generated per connection)
    TOPIC_PREFIX - Prefix of the login status topic (default: Neura)
    PAGES_FILE - JSON file with page definitions (default: built-in pages)
    HTTP_TIMEOUT - Seconds per HTTP request (default: 10)
    STRICT_FLOAT - Skip non-numeric float values instead of sending 0 (default: false)
    POLL_INTERVAL - Seconds between cycles, 0 runs a single cycle (default: 0)
    LOG_LEVEL - Logging level: DEBUG, INFO, WARNING, ERROR (default: INFO)
"""

import os
import sys
import time
import signal
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import paho.mqtt.publish as publish
from paho.mqtt import MQTTException

from neura_client import (
    DEFAULT_TIMEOUT,
    NeuraClient,
    NeuraError,
    LoginError,
    coerce_value,
    extract_value,
    parse_html,
)
from neura_pages import ConfigError, PageDescriptor, check_topic, load_pages

# Configure logging based on environment
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logger = logging.getLogger("neura2mqtt")


class PublishError(Exception):
    """Raised when a value cannot be delivered to the broker."""
    pass


@dataclass
class CycleFailure:
    stage: str
    target: str
    message: str


@dataclass
class CycleReport:
    """What one cycle published and which failures it absorbed."""

    login_ok: bool = False
    published: List[str] = field(default_factory=list)
    failures: List[CycleFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.login_ok and not self.failures

    def fail(self, stage: str, target: str, error: Exception):
        self.failures.append(CycleFailure(stage, target, str(error)))


class MQTTPublisher:
    """Fire-and-forget publisher, one broker connection per message."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        username: str = None,
        password: str = None,
        retain: bool = False,
        client_id: str = "",
    ):
        self.host = host
        self.port = port
        self.retain = retain
        self.client_id = client_id
        self.auth = {"username": username, "password": password} if username else None

    def publish(self, topic: str, value: Any):
        """Publish a value with QoS 0."""
        payload = str(value)
        try:
            publish.single(
                topic,
                payload=payload,
                qos=0,
                retain=self.retain,
                hostname=self.host,
                port=self.port,
                client_id=self.client_id,
                auth=self.auth,
            )
        except (OSError, ValueError, MQTTException) as e:
            raise PublishError(f"Publish to {topic} failed: {e}") from e
        logger.debug(f"[MQTT] Published {payload} to {topic}")


class NeuraMQTTBridge:
    """Bridge between the Neura web interface and MQTT."""

    def __init__(
        self,
        neura_host: str,
        neura_username: str,
        neura_password: str,
        pages: Tuple[PageDescriptor, ...],
        publisher: MQTTPublisher,
        topic_prefix: str = "Neura",
        http_timeout: float = DEFAULT_TIMEOUT,
        strict_float: bool = False,
        poll_interval: int = 0,
    ):
        self.neura_host = neura_host
        self.neura_username = neura_username
        self.neura_password = neura_password
        self.pages = pages
        self.publisher = publisher
        self.login_status_topic = f"{topic_prefix}/loginStatus"
        self.http_timeout = http_timeout
        self.strict_float = strict_float
        self.poll_interval = poll_interval
        self.running = False

    def _publish(self, report: CycleReport, topic: str, value: Any) -> bool:
        try:
            self.publisher.publish(topic, value)
        except PublishError as e:
            logger.warning(f"[MQTT] {e}")
            report.fail("publish", topic, e)
            return False
        report.published.append(topic)
        return True

    def _authenticate(self, client: NeuraClient, report: CycleReport) -> Optional[str]:
        """Login and publish the login status, returning the session id or None."""
        logger.info(f"[NEURA] Logging in to {client.base_url}...")
        try:
            session_id = client.login(self.neura_username, self.neura_password)
        except LoginError as e:
            logger.error(f"[NEURA] Login FAILED: {e}")
            report.fail("auth", client.base_url, e)
            self._publish(report, self.login_status_topic, 0)
            return None

        report.login_ok = True
        self._publish(report, self.login_status_topic, 1)
        return session_id

    def _process_page(self, client: NeuraClient, page: PageDescriptor, session_id: str, report: CycleReport):
        url = client.page_url(page.url)
        try:
            html = client.fetch_page(page.url, session_id)
        except NeuraError as e:
            logger.error(f"[NEURA] {e}")
            report.fail("fetch", url, e)
            return

        document = parse_html(html)
        published_count = 0
        for item in page.items:
            try:
                raw = extract_value(document, item.element_id)
            except NeuraError as e:
                logger.warning(f"[NEURA] {url}: {e}")
                report.fail("extract", item.topic, e)
                continue

            try:
                value = coerce_value(raw, item.value_type, strict=self.strict_float)
            except NeuraError as e:
                logger.warning(f"[NEURA] {item.element_id}: {e}")
                report.fail("coerce", item.topic, e)
                continue

            logger.debug(f"[NEURA] {item.element_id}: {raw!r} -> {value}")
            if self._publish(report, item.topic, value):
                published_count += 1

        logger.info(f"[MQTT] Published {published_count}/{len(page.items)} values from {url}")

    def run_cycle(self) -> CycleReport:
        """
        Run one login, fetch and publish pass over all pages.

        Failures are logged and collected in the returned report; a failed
        page or item never stops the remaining ones, a failed login ends
        the cycle after the login status has been sent.
        """
        report = CycleReport()
        with NeuraClient(self.neura_host, timeout=self.http_timeout) as client:
            session_id = self._authenticate(client, report)
            if session_id is None:
                return report

            for page in self.pages:
                self._process_page(client, page, session_id, report)

        if report.failures:
            logger.warning(
                f"[POLL] Cycle finished with {len(report.failures)} failure(s), "
                f"{len(report.published)} message(s) published"
            )
        else:
            logger.info(f"[POLL] Cycle finished, {len(report.published)} message(s) published")
        return report

    def run(self):
        """Main loop."""
        self.running = True

        logger.info("=" * 50)
        logger.info("Neura MQTT Bridge starting...")
        logger.info(f"Log level: {log_level}")
        logger.info(f"[POLL] Starting polling loop (interval: {self.poll_interval}s)")
        logger.info("=" * 50)

        poll_count = 0
        while self.running:
            poll_count += 1
            logger.debug(f"[POLL] Poll cycle #{poll_count}")

            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"[POLL] Error in poll loop: {e}", exc_info=True)

            # Sleep in small increments to allow clean shutdown
            logger.debug(f"[POLL] Sleeping for {self.poll_interval}s until next poll...")
            for _ in range(self.poll_interval):
                if not self.running:
                    break
                time.sleep(1)

        logger.info("[SHUTDOWN] Goodbye!")

    def stop(self):
        """Stop the bridge."""
        self.running = False


def env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def bridge_from_env() -> NeuraMQTTBridge:
    """
    Build the bridge from environment variables.

    Raises:
        ConfigError: If required settings are missing or invalid
    """
    neura_host = os.environ.get("NEURA_HOST", "").strip()
    neura_username = os.environ.get("NEURA_USERNAME")
    neura_password = os.environ.get("NEURA_PASSWORD")
    if not neura_host or not neura_username or not neura_password:
        raise ConfigError("NEURA_HOST, NEURA_USERNAME and NEURA_PASSWORD must be set")

    try:
        mqtt_port = int(os.environ.get("MQTT_PORT", "1883"))
        http_timeout = float(os.environ.get("HTTP_TIMEOUT", str(DEFAULT_TIMEOUT)))
        poll_interval = int(os.environ.get("POLL_INTERVAL", "0"))
    except ValueError as e:
        raise ConfigError(f"Invalid number in environment: {e}") from e

    topic_prefix = os.environ.get("TOPIC_PREFIX", "Neura")
    check_topic(f"{topic_prefix}/loginStatus")

    publisher = MQTTPublisher(
        host=os.environ.get("MQTT_HOST", "localhost"),
        port=mqtt_port,
        username=os.environ.get("MQTT_USERNAME"),
        password=os.environ.get("MQTT_PASSWORD"),
        retain=env_flag("MQTT_RETAIN"),
        client_id=os.environ.get("MQTT_CLIENT_ID", ""),
    )

    return NeuraMQTTBridge(
        neura_host=neura_host,
        neura_username=neura_username,
        neura_password=neura_password,
        pages=load_pages(os.environ.get("PAGES_FILE")),
        publisher=publisher,
        topic_prefix=topic_prefix,
        http_timeout=http_timeout,
        strict_float=env_flag("STRICT_FLOAT"),
        poll_interval=max(poll_interval, 0),
    )


def main():
    """Main entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        bridge = bridge_from_env()
    except ConfigError as e:
        print(f"Error: {e}")
        print("\nUsage:")
        print("  export NEURA_HOST='192.168.1.50'")
        print("  export NEURA_USERNAME='user'")
        print("  export NEURA_PASSWORD='password'")
        print("  export MQTT_HOST='localhost'  # optional")
        print("  export PAGES_FILE='pages.json'  # optional, built-in pages otherwise")
        print("  python neura_mqtt_bridge.py")
        sys.exit(1)

    if not bridge.poll_interval:
        bridge.run_cycle()
        return

    # Handle shutdown signals
    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        bridge.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        bridge.run()
    except KeyboardInterrupt:
        bridge.stop()


if __name__ == "__main__":
    main()
