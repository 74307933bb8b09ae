"""
Tests for the streaming feed decoder.
"""

from pathlib import Path

import pytest

from feedsync.catalog.models import Barcode
from feedsync.exceptions import DecodeError
from feedsync.feed.decoder import (
    GroupContext,
    build_record,
    decode_chunks,
    decode_feed,
    normalize_barcodes,
    parse_price,
)


async def _chunks(*parts: str):
    for part in parts:
        yield part.encode("utf-8")


async def _collect(records):
    return [r async for r in records]


class TestParsePrice:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("12,50", 1250),
            ("1.234,50", 123450),
            ("12.5", 1250),
            ("7", 700),
            (" 3,10 ", 310),
            ("0,005", 1),
        ],
    )
    def test_minor_units(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_absent_is_none(self, raw):
        assert parse_price(raw) is None

    @pytest.mark.parametrize("raw", ["abc", "12,5x", "NaN"])
    def test_invalid_raises(self, raw):
        with pytest.raises(DecodeError, match="Invalid price"):
            parse_price(raw)


class TestNormalizeBarcodes:
    def test_single_object_becomes_list(self):
        result = normalize_barcodes({"Barcode": {"value": "A", "quantity": "2"}})
        assert result == [Barcode(value="A", quantity=2)]

    def test_list_is_kept_in_order(self):
        result = normalize_barcodes(
            {"Barcode": [{"value": "A", "quantity": "1"}, {"value": "B", "quantity": "6"}]}
        )
        assert [(b.value, b.quantity) for b in result] == [("A", 1), ("B", 6)]

    @pytest.mark.parametrize("container", [None, "", {"Barcode": ""}, {}])
    def test_absent_is_empty_list(self, container):
        assert normalize_barcodes(container) == []

    def test_missing_quantity_defaults_to_one(self):
        assert normalize_barcodes({"Barcode": {"value": "A"}}) == [Barcode(value="A", quantity=1)]

    def test_missing_value_raises(self):
        with pytest.raises(DecodeError, match="without a value"):
            normalize_barcodes({"Barcode": {"quantity": "1"}})

    def test_bad_quantity_raises(self):
        with pytest.raises(DecodeError, match="quantity"):
            normalize_barcodes({"Barcode": {"value": "A", "quantity": "many"}})


class TestBuildRecord:
    def test_group_fields_are_inherited(self):
        record = build_record(
            {"code": "1", "oldCode": "", "description": "X", "price": "1,00", "disbarred": "0"},
            GroupContext(code="09", description="Pipe"),
        )
        assert record.group_code == "09"
        assert record.group_description == "Pipe"
        assert record.price == 100
        assert record.barcodes == ()

    def test_error_names_the_article(self):
        with pytest.raises(DecodeError, match="Article '77'"):
            build_record({"code": "77", "price": "x"}, GroupContext("1", "G"))


class TestDecodeFeed:
    @pytest.mark.asyncio
    async def test_sample_feed(self, feed_file: Path):
        records = await _collect(decode_feed(feed_file))

        assert [r.code for r in records] == ["1001", "1002", "2001", ""]
        first, second, third, fourth = records

        assert first.price == 1250
        assert first.group_code == "01"
        assert first.group_description == "Cigarettes"
        assert [(b.value, b.quantity) for b in first.barcodes] == [("8000000000011", 1)]

        assert second.old_code == "0902"
        assert second.price == 123450
        assert len(second.barcodes) == 2

        assert third.group_code == "02"
        assert third.price is None
        assert third.barcodes == ()

        assert fourth.is_disbarred
        assert fourth.identity == "2000"

    @pytest.mark.asyncio
    async def test_small_chunks_decode_identically(self, feed_file: Path):
        whole = await _collect(decode_feed(feed_file))
        chunked = await _collect(decode_feed(feed_file, chunk_size=7))
        assert chunked == whole

    @pytest.mark.asyncio
    async def test_child_element_form(self):
        xml = (
            "<Export><Groups><Group><code>03</code><description>Pipe</description><Articles>"
            "<Article><code>3001</code><oldCode/><description>Cherry</description>"
            "<price>4,20</price><disbarred>0</disbarred>"
            "<Barcodes><Barcode><quantity>2</quantity><value>800</value></Barcode></Barcodes>"
            "</Article></Articles></Group></Groups></Export>"
        )
        (record,) = await _collect(decode_chunks(_chunks(xml)))
        assert record.code == "3001"
        assert record.old_code == ""
        assert record.price == 420
        assert record.group_code == "03"
        assert record.group_description == "Pipe"
        assert record.barcodes == (Barcode(value="800", quantity=2),)

    @pytest.mark.asyncio
    async def test_group_fields_after_articles_are_ignored(self):
        xml = (
            "<TobaccoData><Groups><Group><code>07</code><Articles>"
            '<Article code="5" description="D" disbarred="0"/>'
            "</Articles><description>Cigars</description></Group></Groups></TobaccoData>"
        )
        (record,) = await _collect(decode_chunks(_chunks(xml)))
        assert record.group_code == "07"
        assert record.group_description == ""

    @pytest.mark.asyncio
    async def test_first_record_yielded_before_group_is_fully_read(self):
        """A group missing its description streams; its articles are not held back."""
        article = (
            "<Article><code>{n}</code><oldCode/><description>Item {n}</description>"
            "<price>1,00</price><disbarred>0</disbarred></Article>"
        )
        xml = (
            "<TobaccoData><Groups><Group><code>01</code><Articles>"
            + "".join(article.format(n=n) for n in range(2000))
            + "</Articles></Group></Groups></TobaccoData>"
        ).encode("utf-8")

        read = 0

        async def counting_chunks():
            nonlocal read
            for start in range(0, len(xml), 1024):
                chunk = xml[start : start + 1024]
                read += len(chunk)
                yield chunk

        records = decode_chunks(counting_chunks())
        first = await records.__anext__()
        await records.aclose()

        assert first.code == "0"
        assert first.group_code == "01"
        assert first.group_description == ""
        assert read <= 2 * 1024

    @pytest.mark.asyncio
    async def test_articles_outside_groups_are_ignored(self):
        xml = (
            '<TobaccoData><Header><Article code="x" disbarred="0"/></Header>'
            '<Groups><Group code="1" description="G"><Articles>'
            '<Article code="y" disbarred="0"/></Articles></Group></Groups></TobaccoData>'
        )
        records = await _collect(decode_chunks(_chunks(xml)))
        assert [r.code for r in records] == ["y"]

    @pytest.mark.asyncio
    async def test_empty_groups(self):
        records = await _collect(decode_chunks(_chunks("<TobaccoData><Groups/></TobaccoData>")))
        assert records == []

    @pytest.mark.asyncio
    async def test_malformed_xml_raises_with_position(self):
        xml = '<TobaccoData><Groups><Group code="1"><Articles><Article code="1"></Groups>'
        with pytest.raises(DecodeError) as exc_info:
            await _collect(decode_chunks(_chunks(xml)))
        assert exc_info.value.position is not None
        assert "line" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_truncated_document_raises(self):
        xml = '<TobaccoData><Groups><Group code="1" description="G"><Articles>'
        with pytest.raises(DecodeError):
            await _collect(decode_chunks(_chunks(xml)))

    @pytest.mark.asyncio
    async def test_iter_group_articles_yields_elements(self):
        """Article elements come out paired with their group context."""
        from feedsync.feed.decoder import iter_events, iter_group_articles, select_path

        xml = (
            '<TobaccoData><Groups><Group code="1" description="G"><Articles>'
            '<Article code="a" disbarred="0"/><Article code="b" disbarred="0"/>'
            "</Articles></Group></Groups></TobaccoData>"
        )
        seen = []
        async for group, article in iter_group_articles(select_path(iter_events(_chunks(xml)))):
            seen.append((group.code, article.get("code")))
        assert seen == [("1", "a"), ("1", "b")]
