"""
Page and data item definitions for the Neura heat pump.

Each page is a JSP status page of the web interface. Each data item maps
the id of an element on that page to a value type and an MQTT topic.
Page URLs may be absolute or relative to /neura/mobile/jsp/ on the device.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Tuple
from urllib.parse import urlparse

logger = logging.getLogger("neura_pages")


class ConfigError(ValueError):
    """Raised when the page configuration is invalid."""
    pass


class ValueType(Enum):
    FLOAT = "float"
    BOOL = "bool"


@dataclass(frozen=True)
class MetricDescriptor:
    element_id: str
    value_type: ValueType
    topic: str


@dataclass(frozen=True)
class PageDescriptor:
    url: str
    items: Tuple[MetricDescriptor, ...]


def _item(element_id: str, value_type: str, topic: str) -> MetricDescriptor:
    try:
        parsed_type = ValueType(value_type)
    except ValueError:
        raise ConfigError(f"Unsupported type '{value_type}' for element '{element_id}'") from None
    return MetricDescriptor(element_id=element_id, value_type=parsed_type, topic=topic)


# Schema page of the heat pump overview
DEFAULT_PAGES = (
    PageDescriptor(
        url="schema.jsp",
        items=(
            _item("screed", "float", "Neura/status/Estrichtemperatur"),
            _item("room", "float", "Neura/status/Raumtemperatur"),
            _item("heater_rod", "bool", "Neura/status/Boiler_E_patrone"),
            _item("cylinder", "float", "Neura/status/Boilertemperatur"),
            _item("flow", "float", "Neura/status/Vorlauf"),
            _item("return", "float", "Neura/status/Ruecklauf"),
            _item("comp_in", "float", "Neura/status/Kompressor_ein"),
            _item("comp_out", "float", "Neura/status/Kompressor_aus"),
            _item("cylinder_pump", "bool", "Neura/status/Umschaltventil_Boilerladung"),
            _item("heatpump_2", "bool", "Neura/status/Waermepumpe"),
            _item("circulator_pump", "bool", "Neura/status/Umwaelzpumpe"),
        ),
    ),
)


def _check_url(url: str):
    if not url or any(c.isspace() for c in url):
        raise ConfigError(f"Invalid page url: {url!r}")
    parsed = urlparse(url)
    if parsed.scheme or parsed.netloc:
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Invalid page url: {url!r}")


def check_topic(topic: str):
    """Reject topics that cannot be published to."""
    if not topic:
        raise ConfigError("Empty topic")
    levels = topic.split("/")
    if any(not level for level in levels):
        raise ConfigError(f"Empty level in topic '{topic}'")
    if "+" in topic or "#" in topic:
        raise ConfigError(f"Wildcard in topic '{topic}'")


def validate_pages(pages: Iterable[PageDescriptor]) -> Tuple[PageDescriptor, ...]:
    """
    Check the page list before the first cycle runs.

    Every page needs a usable url and at least one item, element ids must
    be unique on their page and topics unique across all pages. A topic
    collision would make two metrics overwrite each other downstream.

    Raises:
        ConfigError: On the first problem found
    """
    pages = tuple(pages)
    if not pages:
        raise ConfigError("No pages configured")

    topics = {}
    for page in pages:
        _check_url(page.url)
        if not page.items:
            raise ConfigError(f"Page {page.url} has no data items")

        element_ids = set()
        for item in page.items:
            if not isinstance(item.value_type, ValueType):
                raise ConfigError(f"Unsupported type {item.value_type!r} for element '{item.element_id}'")
            if not item.element_id:
                raise ConfigError(f"Empty element id on page {page.url}")
            if not item.topic:
                raise ConfigError(f"Empty topic for element '{item.element_id}'")
            check_topic(item.topic)
            if item.element_id in element_ids:
                raise ConfigError(f"Duplicate element id '{item.element_id}' on page {page.url}")
            element_ids.add(item.element_id)
            if item.topic in topics:
                raise ConfigError(
                    f"Topic '{item.topic}' used by both '{topics[item.topic]}' and '{item.element_id}'"
                )
            topics[item.topic] = item.element_id

    return pages


def pages_from_config(data) -> Tuple[PageDescriptor, ...]:
    """Build and validate pages from decoded JSON page config."""
    if not isinstance(data, list):
        raise ConfigError("Page config must be a list of pages")

    pages = []
    for entry in data:
        try:
            items = tuple(
                _item(item["element_id"], item["type"], item["topic"])
                for item in entry["items"]
            )
            pages.append(PageDescriptor(url=entry["url"], items=items))
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Malformed page entry {entry!r}: {e}") from e

    return validate_pages(pages)


def load_pages(path: str = None) -> Tuple[PageDescriptor, ...]:
    """
    Load the page list from a JSON file, or the built-in pages.

    Args:
        path: Page file path (uses DEFAULT_PAGES if not specified)

    Raises:
        ConfigError: If the file is unreadable or invalid
    """
    if not path:
        return validate_pages(DEFAULT_PAGES)

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read page file {path}: {e}") from e

    pages = pages_from_config(data)
    logger.info(f"Loaded {len(pages)} page(s) with {sum(len(p.items) for p in pages)} data items from {path}")
    return pages
