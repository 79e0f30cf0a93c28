"""
Tests for the M3U parser: attribute extraction, defaults and skipped lines.
"""
import io
import logging

import pytest

from conftest import SAMPLE_PLAYLIST
from m3u_proxy.services.m3u_parser_service import (
    RecordExtractionError,
    extract_fields,
    parse_m3u,
    parse_m3u_file,
)
from m3u_proxy.services.m3u_writer_service import write_records


def _parse(text: str):
    return list(parse_m3u(io.StringIO(text)))


class TestExtractFields:
    """EXTINF field grammar."""

    def test_all_common_attributes(self):
        attributes, label = extract_fields(
            '#EXTINF:-1 tvg-id="espn.us" tvg-name="ESPN" tvg-logo="http://l/e.png" group-title="Sports",ESPN HD'
        )
        assert attributes == {
            "tvg-id": "espn.us",
            "tvg-name": "ESPN",
            "tvg-logo": "http://l/e.png",
            "group-title": "Sports",
        }
        assert label == "ESPN HD"

    def test_no_attributes(self):
        attributes, label = extract_fields("#EXTINF:-1,BBC One HD")
        assert attributes == {}
        assert label == "BBC One HD"

    def test_positive_and_fractional_duration(self):
        assert extract_fields("#EXTINF:0,Zero")[1] == "Zero"
        assert extract_fields("#EXTINF:10.5,Clip")[1] == "Clip"

    def test_at_most_five_attributes(self):
        attributes, label = extract_fields(
            '#EXTINF:-1 a="1" b="2" c="3" d="4" e="5" f="6",Six'
        )
        assert attributes == {"a": "1", "b": "2", "c": "3", "d": "4", "e": "5"}
        assert label == "Six"

    def test_comma_inside_attribute_value(self):
        attributes, label = extract_fields('#EXTINF:-1 tvg-name="News, Live" group-title="News",News Live')
        assert attributes["tvg-name"] == "News, Live"
        assert label == "News Live"

    def test_label_is_trimmed(self):
        assert extract_fields('#EXTINF:-1 tvg-id="x",  Spaced  ')[1] == "Spaced"

    @pytest.mark.parametrize("line", [
        "#EXTINF:abc,Name",
        '#EXTINF:-1 tvg-id="x"',
        "#EXTINF:",
    ])
    def test_malformed_lines_raise(self, line):
        with pytest.raises(RecordExtractionError):
            extract_fields(line, 3)


class TestParseM3U:
    """Record assembly from EXTINF + URL pairs."""

    def test_sample_playlist(self):
        records = _parse(SAMPLE_PLAYLIST)

        assert [record.stream for record in records] == [
            "http://streams/espn",
            "http://streams/cnn",
            "http://streams/bbc1",
            "http://streams/fs1",
        ]
        espn = records[0]
        assert espn.attributes == {
            "tvg-id": "espn.us",
            "tvg-name": "HD ESPN",
            "tvg-logo": "http://logos/espn.png",
            "group-title": "Sports News",
        }
        assert espn.label == "ESPN"

    def test_tvg_name_falls_back_to_label(self):
        record = _parse("#EXTM3U\n#EXTINF:-1 group-title=\"News\",CNN International\nhttp://x\n")[0]
        assert record.attributes["tvg-name"] == "CNN International"

    def test_group_title_falls_back_to_leading_word(self):
        record = _parse("#EXTINF:-1,BBC One HD\nhttp://x\n")[0]
        assert record.attributes["tvg-name"] == "BBC One HD"
        assert record.attributes["group-title"] == "BBC"

    def test_group_title_fallback_can_be_empty(self):
        record = _parse("#EXTINF:-1,[VIP] Channel\nhttp://x\n")[0]
        assert record.attributes["group-title"] == ""

    def test_empty_attribute_values_are_kept(self):
        record = _parse('#EXTINF:-1 tvg-id="" group-title="News",CNN\nhttp://x\n')[0]
        assert record.attributes["tvg-id"] == ""
        assert record.tvg_id == ""

    def test_blank_lines_and_crlf(self):
        text = "#EXTM3U\r\n\r\n#EXTINF:-1,One\r\n\r\nhttp://one\r\n   \r\n"
        records = _parse(text)
        assert len(records) == 1
        assert records[0].stream == "http://one"
        assert records[0].label == "One"

    def test_other_directive_lines_are_stream_lines(self, caplog):
        text = "#EXTINF:-1,One\n#EXTVLCOPT:x=y\nhttp://one\n#EXTINF:-1,Two\nhttp://two\n"

        with caplog.at_level(logging.WARNING):
            records = _parse(text)

        assert [record.stream for record in records] == ["#EXTVLCOPT:x=y", "http://two"]
        assert records[0].label == "One"
        assert "URL without EXTINF" in caplog.text

    def test_group_title_fallback_is_ascii_only(self):
        record = _parse("#EXTINF:-1,Первый канал\nhttp://x\n")[0]
        assert record.attributes["tvg-name"] == "Первый канал"
        assert record.attributes["group-title"] == ""

    def test_group_title_fallback_stops_at_non_ascii(self):
        record = _parse("#EXTINF:-1,Café TV\nhttp://x\n")[0]
        assert record.attributes["group-title"] == "Caf"

    def test_malformed_extinf_skips_its_record(self, caplog):
        text = (
            "#EXTM3U\n"
            "#EXTINF:broken\n"
            "http://broken\n"
            "#EXTINF:-1,Good\n"
            "http://good\n"
        )
        with caplog.at_level(logging.WARNING):
            records = _parse(text)

        assert [record.stream for record in records] == ["http://good"]
        assert "Malformed EXTINF" in caplog.text

    def test_valid_extinf_after_malformed_one_is_used(self):
        records = _parse("#EXTINF:broken\n#EXTINF:-1,Good\nhttp://good\n")
        assert [record.label for record in records] == ["Good"]

    def test_url_without_extinf_is_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            records = _parse("#EXTM3U\nhttp://orphan\n#EXTINF:-1,One\nhttp://one\n")
        assert [record.stream for record in records] == ["http://one"]
        assert "URL without EXTINF" in caplog.text

    def test_dangling_extinf_is_dropped_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            records = _parse("#EXTINF:-1,One\nhttp://one\n#EXTINF:-1,Two\n")
        assert [record.label for record in records] == ["One"]
        assert "without URL" in caplog.text

    def test_records_are_independent(self):
        records = _parse("#EXTINF:-1 tvg-id=\"a\",A\nhttp://a\n#EXTINF:-1,B\nhttp://b\n")
        assert "tvg-id" not in records[1].attributes

    def test_parse_is_lazy(self):
        lines = iter(["#EXTINF:-1,One", "http://one", "#EXTINF:-1,Two", "http://two"])
        records = parse_m3u(lines)
        assert next(records).label == "One"
        assert next(lines) == "#EXTINF:-1,Two"


class TestParseM3UFile:
    """Parsing from disk and round-tripping through the writer."""

    def test_parse_file(self, playlist_file):
        records = list(parse_m3u_file(playlist_file))
        assert len(records) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            list(parse_m3u_file(tmp_path / "missing.m3u"))

    def test_round_trip(self):
        original = _parse(SAMPLE_PLAYLIST)
        out = io.StringIO()
        write_records(out, original)

        reparsed = _parse(out.getvalue())

        assert [record.as_dict() for record in reparsed] == [record.as_dict() for record in original]
        assert [record.label for record in reparsed] == [record.display_name for record in original]
