#!/usr/bin/env python3
"""
Discover readable elements on the Neura web interface pages.

This script logs in and lists every element that carries both an id and
a value attribute, which is what a data item in a page file can point at.
Elements already mapped to a topic are marked.

Usage:
    export NEURA_HOST='192.168.1.50'
    export NEURA_USERNAME='user'
    export NEURA_PASSWORD='password'
    python discover_elements.py [page.jsp ...]
"""

import os
import sys

from neura_client import NeuraClient, LoginError, FetchError, parse_html
from neura_pages import ConfigError, load_pages


def find_value_elements(html):
    """Return (id, tag name, value) for every element with an id and a value."""
    document = parse_html(html)
    return [
        (element["id"], element.name, element["value"])
        for element in document.find_all(attrs={"id": True, "value": True})
    ]


def main():
    host = os.environ.get("NEURA_HOST")
    username = os.environ.get("NEURA_USERNAME")
    password = os.environ.get("NEURA_PASSWORD")

    if not host or not username or not password:
        print("Set NEURA_HOST, NEURA_USERNAME and NEURA_PASSWORD environment variables")
        sys.exit(1)

    try:
        pages = load_pages(os.environ.get("PAGES_FILE"))
    except ConfigError as e:
        print(f"Invalid page config: {e}")
        sys.exit(1)

    mapped = {
        (page.url, item.element_id): item.topic
        for page in pages
        for item in page.items
    }
    urls = sys.argv[1:] or [page.url for page in pages]

    print("=" * 60)
    print("NEURA ELEMENT DISCOVERY")
    print("=" * 60)

    with NeuraClient(host) as client:
        try:
            print("\n[1] Logging in...")
            session_id = client.login(username, password)
        except LoginError as e:
            print(f"Login failed: {e}")
            sys.exit(1)

        for index, url in enumerate(urls, start=2):
            print("\n" + "=" * 60)
            print(f"[{index}] {client.page_url(url)}")
            print("=" * 60)
            try:
                html = client.fetch_page(url, session_id)
            except FetchError as e:
                print(f"    ERROR: {e}")
                continue

            elements = find_value_elements(html)
            if not elements:
                print("    No elements with id and value found")
            for element_id, tag, value in elements:
                topic = mapped.get((url, element_id))
                marker = f" -> {topic}" if topic else ""
                print(f"  <{tag} id={element_id!r}> {value!r}{marker}")


if __name__ == "__main__":
    main()
