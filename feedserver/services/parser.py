from __future__ import annotations

import datetime as dt
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional
from urllib.parse import urljoin

from lxml import etree

from feedserver.core.exceptions import FeedParseError

logger = logging.getLogger(__name__)

GMT_OFFSET_RE = re.compile(r"GMT[+-]00:00")
ZERO_OFFSET_RE = re.compile(r"[+-]00:00")

DATE_FIELDS = ("pubDate",)

@dataclass
class Frame:
    """An element whose end tag has not been processed yet.

    ``xmlns`` maps prefixes to namespace URIs. When ``owns_xmlns`` is false
    the mapping is the parent's own dict, shared by reference; a frame that
    declares prefixes gets a private copy extended with them.
    """

    name: Optional[str]
    local: Optional[str] = None
    attrs: Optional[dict[str, str]] = None
    xmlns: dict[str, str] = field(default_factory=dict)
    owns_xmlns: bool = False
    content: Optional[list[Any]] = field(default_factory=list)

def _split_tag(tag: str) -> tuple[Optional[str], str]:
    if tag.startswith("{"):
        uri, local = tag[1:].split("}", 1)
        return uri, local
    return None, tag

def _qualify(tag: str, xmlns: dict[str, str]) -> tuple[str, str]:
    """Return ``(prefix:local or local, local)`` for an lxml ``{uri}local`` tag."""
    uri, local = _split_tag(tag)
    if uri is None:
        return local, local
    for prefix, known in xmlns.items():
        if known == uri:
            return f"{prefix}:{local}", local
    return local, local

def parse_date(text: str) -> Optional[dt.datetime]:
    """Parse an RFC 822 or ISO 8601 date. Naive results are taken as UTC."""
    s = text.strip()
    if GMT_OFFSET_RE.search(s):
        # Some generators emit "GMT+00:00"
        s = ZERO_OFFSET_RE.sub("", s, count=1)
        logger.debug("item: fix date -> %s", s)

    value = None
    try:
        value = parsedate_to_datetime(s)
    except (TypeError, ValueError, IndexError):
        pass
    if value is None:
        try:
            value = dt.datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None

    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)

def format_date(value: dt.datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")

def epoch_ms(value: dt.datetime) -> int:
    return int(value.timestamp() * 1000)

def _value(frame: Frame) -> Any:
    """Single value for a child element: its text, nested children, or attributes."""
    if not frame.content:
        return frame.attrs
    first = frame.content[0]
    if isinstance(first, str):
        return first
    return _flatten(frame.content)

def _flatten(content: Iterable[Any]) -> dict[str, Any]:
    record: dict[str, Any] = {}
    for e in content:
        if isinstance(e, Frame):
            record[e.name] = _value(e)
    return record

class _TreeBuilder:
    """lxml parser target; one instance per document.

    Closing elements are rewritten by post-hooks: ``item`` becomes a flat item
    record (normalized ``pubDate``, numeric ``date``, derived ``guid``),
    ``channel`` a flat record with ``items`` and absolute item links, and
    ``rss`` the final ``{"version": ..., "channel": {...}}`` result.
    """

    def __init__(self) -> None:
        self.current = Frame(name=None)
        self.rss: Optional[dict[str, Any]] = None
        self._stack: list[Frame] = []
        self._last_was_text = False

        self._pre_hooks: dict[str, Callable[[Frame], None]] = {
            "rss": self._pre_rss,
        }
        self._post_hooks: dict[str, Callable[[Frame], Any]] = {
            "item": self._post_item,
            "channel": self._post_channel,
            "rss": self._post_rss,
        }

    # lxml passes the element's namespace declarations when start() accepts them
    def start(self, tag, attrib, nsmap=None) -> None:
        parent = self.current

        declared = {
            prefix: uri
            for prefix, uri in (nsmap or {}).items()
            if prefix and parent.xmlns.get(prefix) != uri
        }
        if declared:
            xmlns = dict(parent.xmlns)
            xmlns.update(declared)
        else:
            xmlns = parent.xmlns

        name, local = _qualify(tag, xmlns)
        attrs = None
        for key, value in attrib.items():
            if attrs is None:
                attrs = {}
            attrs[_qualify(key, xmlns)[0]] = value

        frame = Frame(
            name=name,
            local=local,
            attrs=attrs,
            xmlns=xmlns,
            owns_xmlns=bool(declared),
        )
        self._stack.append(parent)
        self.current = frame

        hook = self._pre_hooks.get(local)
        if hook:
            hook(frame)

        self._last_was_text = False

    def data(self, text: str) -> None:
        content = self.current.content
        if self._last_was_text:
            content[-1] += text
        elif text.strip():
            content.append(text)
            self._last_was_text = True

    def end(self, tag) -> None:
        closed: Any = self.current
        if not closed.content:
            closed.content = None

        hook = self._post_hooks.get(closed.local)
        if hook:
            closed = hook(closed)

        self.current = self._stack.pop()
        self.current.content.append(closed)
        self._last_was_text = False

    def close(self) -> Optional[dict[str, Any]]:
        return self.rss

    def _pre_rss(self, frame: Frame) -> None:
        self.rss = {"version": (frame.attrs or {}).get("version")}

    def _post_item(self, frame: Frame) -> dict[str, Any]:
        item: dict[str, Any] = {"kind": "item"}
        item.update(_flatten(frame.content or ()))

        for name in DATE_FIELDS:
            raw = item.get(name)
            if not isinstance(raw, str):
                continue
            parsed = parse_date(raw)
            if parsed is None:
                logger.warning("item: unparseable %s %r", name, raw)
                continue
            item[name] = format_date(parsed)
            if name == "pubDate":
                item["date"] = epoch_ms(parsed)

        if not isinstance(item.get("guid"), str) or not item["guid"]:
            item.pop("guid", None)
            link = item.get("link")
            enclosure = item.get("enclosure")
            if isinstance(link, str) and link:
                item["guid"] = link
            elif isinstance(enclosure, dict) and enclosure.get("url"):
                item["guid"] = enclosure["url"]
            else:
                logger.warning("item: no guid, link or enclosure for %r", item.get("title"))
        return item

    def _post_channel(self, frame: Frame) -> dict[str, Any]:
        chan: dict[str, Any] = {"items": []}
        base_url = None
        for e in frame.content or ():
            if isinstance(e, dict) and e.get("kind") == "item":
                # Only links seen after the channel's own <link> can be resolved
                link = e.get("link")
                if base_url and isinstance(link, str):
                    e["link"] = urljoin(base_url, link.strip())
                chan["items"].append(e)
            elif isinstance(e, Frame):
                chan[e.name] = _value(e)
                if e.name == "link" and isinstance(chan["link"], str):
                    base_url = chan["link"].strip()
        return chan

    def _post_rss(self, frame: Frame) -> dict[str, Any]:
        if self.rss is None:
            self.rss = {"version": None}
        channel = next(
            (e for e in frame.content or () if isinstance(e, dict)),
            None,
        )
        self.rss["channel"] = channel
        return self.rss

class RSSParser:
    """Incremental RSS 2.0 / 0.9x parser: ``feed()`` chunks, then ``close()``.

    Atom is not handled.
    """

    def __init__(self) -> None:
        self._builder = _TreeBuilder()
        self._parser = etree.XMLParser(
            target=self._builder,
            resolve_entities=False,
            no_network=True,
        )

    def feed(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            self._parser.feed(data)
        except etree.XMLSyntaxError as e:
            raise FeedParseError(f"Malformed XML: {e}") from e

    def close(self) -> dict[str, Any]:
        try:
            result = self._parser.close()
        except etree.XMLSyntaxError as e:
            raise FeedParseError(f"Malformed XML: {e}") from e
        if not result or result.get("channel") is None:
            raise FeedParseError("Document is not an RSS feed")
        return result

def parse_rss(data: bytes | str | Iterable[bytes]) -> dict[str, Any]:
    parser = RSSParser()
    if isinstance(data, (bytes, str)):
        parser.feed(data)
    else:
        for chunk in data:
            parser.feed(chunk)
    return parser.close()
