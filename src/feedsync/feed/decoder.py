"""
Streaming decoder for the tobacco catalog feed.

The feed is an XML document shaped like::

    <TobaccoData>
      <Groups>
        <Group code="01" description="Cigarettes">
          <Articles>
            <Article code="123" oldCode="" description="..." price="12,50" disbarred="0">
              <Barcodes>
                <Barcode quantity="1" value="8000000000001"/>
              </Barcodes>
            </Article>
          </Articles>
        </Group>
      </Groups>
    </TobaccoData>

Fields may be attributes or child elements. Decoding is a chain of async
generators, each narrowing the previous one:

    read_chunks -> iter_events -> select_path -> iter_group_articles -> build_record

Only one ``Article`` subtree is materialized at a time; finished elements are
detached from their parents so memory does not grow with the document.
"""

from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from feedsync.catalog.models import Barcode, FeedRecord
from feedsync.exceptions import DecodeError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.feed.decoder")

DEFAULT_CHUNK_SIZE = 64 * 1024

# "*" matches any root element name.
GROUP_PATH: tuple[str, ...] = ("*", "Groups", "Group")


@dataclass
class GroupContext:
    """``code``/``description`` of the enclosing ``Group``, inherited by its articles."""

    code: str | None = None
    description: str | None = None


# ----------------------------------------------------------------------
# Stage 1: raw bytes
# ----------------------------------------------------------------------


async def read_chunks(path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Read a file in chunks without blocking the event loop."""
    f = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        f.close()


# ----------------------------------------------------------------------
# Stage 2: generic tree events
# ----------------------------------------------------------------------


async def iter_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[tuple[str, ET.Element]]:
    """
    Incrementally parse XML chunks into ``("start" | "end", element)`` events.

    Raises:
        DecodeError: If the document is not well-formed
    """
    parser = ET.XMLPullParser(events=("start", "end"))
    try:
        async for chunk in chunks:
            parser.feed(chunk)
            # feed() queues parse errors; read_events() raises them
            for event in list(parser.read_events()):
                yield event  # type: ignore[misc]
        parser.close()
        for event in list(parser.read_events()):
            yield event  # type: ignore[misc]
    except ET.ParseError as e:
        raise DecodeError(f"Malformed feed XML: {e.msg}", position=e.position) from e


# ----------------------------------------------------------------------
# Stage 3: path-filtered subtree selection
# ----------------------------------------------------------------------


@dataclass
class PathEvent:
    """An event at or below the selected path; ``depth`` 0 is the path's own element."""

    event: str
    element: ET.Element
    depth: int
    parent: ET.Element | None


def _matches(stack: Sequence[str], path: Sequence[str]) -> bool:
    return all(want in ("*", got) for want, got in zip(path, stack))


async def select_path(
    events: AsyncIterable[tuple[str, ET.Element]],
    path: Sequence[str] = GROUP_PATH,
) -> AsyncIterator[PathEvent]:
    """
    Keep only events inside elements matching ``path`` (e.g. every ``Group``).

    Elements outside the path are discarded as soon as they end.
    """
    tags: list[str] = []
    elements: list[ET.Element] = []
    async for event, elem in events:
        if event == "start":
            tags.append(elem.tag)
            elements.append(elem)
            if len(tags) >= len(path) and _matches(tags, path):
                parent = elements[-2] if len(elements) > 1 else None
                yield PathEvent("start", elem, len(tags) - len(path), parent)
            continue

        inside = len(tags) >= len(path) and _matches(tags, path)
        parent = elements[-2] if len(elements) > 1 else None
        if inside:
            yield PathEvent("end", elem, len(tags) - len(path), parent)
        elif len(tags) > len(path) or not _matches(tags, path[: len(tags)]):
            # Sibling content outside the selected path: drop it.
            elem.clear()
        tags.pop()
        elements.pop()


# ----------------------------------------------------------------------
# Stage 4: per-group article iteration
# ----------------------------------------------------------------------


def _leaf_text(elem: ET.Element | None) -> str | None:
    if elem is None:
        return None
    return (elem.text or "").strip()


async def iter_group_articles(
    selected: AsyncIterable[PathEvent],
) -> AsyncIterator[tuple[GroupContext, ET.Element]]:
    """
    Yield ``(group, article_element)`` for every ``Groups/Group/Articles/Article``.

    Group ``code``/``description`` may be attributes or child elements placed
    before ``Articles``. Once ``Articles`` opens, fields not seen yet default to
    ``""`` and articles stream as they end; nothing is held back per group.
    """
    group = GroupContext()
    streaming = False

    async for pe in selected:
        if pe.depth == 0:
            if pe.event == "start":
                code = pe.element.get("code")
                # Attribute form carries everything up front; no child elements to wait for
                description = pe.element.get("description", "" if code is not None else None)
                group = GroupContext(code=code, description=description)
                streaming = False
            else:
                pe.element.clear()
                if pe.parent is not None:
                    pe.parent.remove(pe.element)
            continue

        if pe.depth == 1 and pe.event == "start" and pe.element.tag == "Articles":
            _seal(group)
            streaming = True
            continue

        if pe.event != "end":
            continue

        if pe.depth == 1 and pe.element.tag in ("code", "description"):
            if streaming:
                logger.warning(f"Group {pe.element.tag} given after its articles; ignored")
            else:
                setattr(group, pe.element.tag, _leaf_text(pe.element))
        elif pe.depth == 2 and pe.element.tag == "Article":
            if pe.parent is not None:
                pe.parent.remove(pe.element)
            if not streaming:
                _seal(group)
                streaming = True
            yield group, pe.element


def _seal(group: GroupContext) -> None:
    if group.code is None:
        group.code = ""
    if group.description is None:
        group.description = ""


# ----------------------------------------------------------------------
# Stage 5: per-article record construction
# ----------------------------------------------------------------------


def element_to_dict(elem: ET.Element) -> Any:
    """
    Convert an element to the plain-object form of the feed.

    Attributes and child elements become keys; repeated children become a
    list; a leaf element becomes its stripped text.
    """
    data: dict[str, Any] = dict(elem.attrib)
    for child in elem:
        value = element_to_dict(child)
        if child.tag in data:
            existing = data[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                data[child.tag] = [existing, value]
        else:
            data[child.tag] = value
    text = (elem.text or "").strip()
    if not data:
        return text
    if text:
        data["#text"] = text
    return data


def parse_price(raw: Any) -> int | None:
    """
    Parse a feed price into integer minor units.

    ``"12,50"`` -> ``1250``; ``"1.234,50"`` -> ``123450``; absent or blank -> ``None``.

    Raises:
        DecodeError: If the value is not a number
    """
    if raw is None:
        return None
    text = str(raw).strip().replace(" ", "")
    if not text:
        return None
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise DecodeError(f"Invalid price {raw!r}") from e
    if not amount.is_finite():
        raise DecodeError(f"Invalid price {raw!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_quantity(raw: Any) -> int:
    if raw is None or str(raw).strip() == "":
        return 1
    try:
        return int(str(raw).strip())
    except ValueError as e:
        raise DecodeError(f"Invalid barcode quantity {raw!r}") from e


def normalize_barcodes(container: Any) -> list[Barcode]:
    """
    Normalize the ``Barcodes`` field to a list of ``Barcode``.

    The source carries ``Barcodes.Barcode`` as a single object, a list of
    objects, or not at all; downstream code only ever sees a list.
    """
    if container in (None, ""):
        return []
    if not isinstance(container, dict):
        raise DecodeError(f"Unexpected Barcodes content: {container!r}")

    entries = container.get("Barcode")
    if entries in (None, ""):
        return []
    if not isinstance(entries, list):
        entries = [entries]

    barcodes: list[Barcode] = []
    for entry in entries:
        if isinstance(entry, str):
            value, quantity = entry, None
        elif isinstance(entry, dict):
            value = entry.get("value") or entry.get("#text")
            quantity = entry.get("quantity")
        else:
            raise DecodeError(f"Unexpected Barcode entry: {entry!r}")
        if not value:
            raise DecodeError("Barcode entry without a value")
        barcodes.append(Barcode(value=str(value).strip(), quantity=_parse_quantity(quantity)))
    return barcodes


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("#text", "")).strip()
    return str(value).strip()


def build_record(article: dict[str, Any], group: GroupContext) -> FeedRecord:
    """Build a normalized FeedRecord from one article object and its group."""
    code = _text(article.get("code"))
    try:
        price = parse_price(article.get("price"))
        barcodes = normalize_barcodes(article.get("Barcodes"))
    except DecodeError as e:
        raise DecodeError(f"Article '{code or _text(article.get('oldCode'))}': {e.message}") from e

    return FeedRecord(
        code=code,
        old_code=_text(article.get("oldCode")),
        description=_text(article.get("description")),
        price=price,
        disbarred=_text(article.get("disbarred")),
        group_code=group.code or "",
        group_description=group.description or "",
        barcodes=tuple(barcodes),
    )


# ----------------------------------------------------------------------
# Composition
# ----------------------------------------------------------------------


async def decode_chunks(chunks: AsyncIterable[bytes]) -> AsyncIterator[FeedRecord]:
    """Decode raw feed bytes into FeedRecords, lazily."""
    count = 0
    async for group, article in iter_group_articles(select_path(iter_events(chunks))):
        record = build_record(element_to_dict(article), group)
        article.clear()
        count += 1
        yield record
    logger.debug(f"Decoded {count} feed records")


def decode_feed(path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[FeedRecord]:
    """
    Decode a feed file into a lazy sequence of FeedRecords.

    Restartable only by calling again (re-reading the file from the start).
    """
    return decode_chunks(read_chunks(path, chunk_size))
