"""Fetching and printing the distribution news feed."""

from __future__ import annotations

import html
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from xml.etree import ElementTree

import requests

from aurtool import text as term

NEWS_URL = "https://archlinux.org/feeds/news"

_RFC1123Z = "%a, %d %b %Y %H:%M:%S %z"
_TIMEOUT = 30

_TAG_REPLACEMENTS = {
    "code": term.CYAN_CODE,
    "/code": term.RESET_CODE,
    "/p": "\n",
}


def _as_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class NewsItem:
    """One entry of the news feed."""

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    creator: str = ""

    def print(self, build_time: datetime | None, all_items: bool, quiet: bool) -> None:
        """Print the item unless it is older than build_time and not all are wanted."""
        formatted_date = ""
        try:
            date = datetime.strptime(self.pub_date, _RFC1123Z)
        except ValueError as exc:
            print(exc, file=sys.stderr)
        else:
            formatted_date = term.format_time(int(date.timestamp()))
            if not all_items and build_time is not None and _as_aware(build_time) > date:
                return

        print(term.bold(term.magenta(formatted_date)), term.bold(self.title.strip()))

        if not quiet:
            print(parse_news(self.description).strip())


def parse_news(text: str) -> str:
    """Turn the small HTML subset used in news descriptions into terminal text."""
    out: list[str] = []
    tag: list[str] = []
    escape: list[str] = []
    in_tag = False
    in_escape = False

    for char in text:
        if in_tag:
            if char == ">":
                in_tag = False
                out.append(_TAG_REPLACEMENTS.get("".join(tag), ""))
            else:
                tag.append(char)
            continue

        if in_escape:
            escape.append(char)
            if char == ";":
                in_escape = False
                out.append(html.unescape("".join(escape)))
            continue

        if char == "<":
            in_tag = True
            tag = []
        elif char == "&":
            in_escape = True
            escape = [char]
        else:
            out.append(char)

    out.append(term.RESET_CODE)
    return "".join(out)


def _item_from_element(element: ElementTree.Element) -> NewsItem:
    creator = next(
        (child.text or "" for child in element if child.tag.rpartition("}")[2] == "creator"),
        "",
    )
    return NewsItem(
        title=element.findtext("title", default=""),
        link=element.findtext("link", default=""),
        description=element.findtext("description", default=""),
        pub_date=element.findtext("pubDate", default=""),
        creator=creator,
    )


def parse_feed(body: str | bytes) -> list[NewsItem]:
    """Parse an RSS document into its news items, in document order."""
    root = ElementTree.fromstring(body)
    channel = root.find("channel")
    if channel is None:
        return []
    return [_item_from_element(element) for element in channel.findall("item")]


def print_news_feed(
    session: requests.Session | None,
    cut_off_date: datetime | None,
    bottom_up: bool,
    all_items: bool,
    quiet: bool,
) -> None:
    """Download the news feed and print its items."""
    if session is None:
        with requests.Session() as own_session:
            print_news_feed(own_session, cut_off_date, bottom_up, all_items, quiet)
        return

    response = session.get(NEWS_URL, timeout=_TIMEOUT)
    items = parse_feed(response.content)

    for item in reversed(items) if bottom_up else items:
        item.print(cut_off_date, all_items, quiet)