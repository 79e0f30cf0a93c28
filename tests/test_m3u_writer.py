"""
Tests for M3U serialization.
"""
import pytest

from m3u_proxy.services.fetch_types import PlaylistRecord
from m3u_proxy.services.m3u_writer_service import format_extinf, write_m3u


class TestFormatExtinf:
    """EXTINF line layout."""

    def test_canonical_attribute_order(self):
        record = PlaylistRecord(
            stream="http://x",
            label="ignored",
            attributes={
                "group-title": "Sports",
                "tvg-logo": "http://l.png",
                "tvg-name": "ESPN",
                "tvg-id": "espn.us",
            },
        )
        assert format_extinf(record) == (
            '#EXTINF:-1 tvg-id="espn.us" tvg-name="ESPN" tvg-logo="http://l.png" group-title="Sports",ESPN'
        )

    def test_absent_and_empty_attributes_are_omitted(self):
        record = PlaylistRecord(
            stream="http://x",
            attributes={"tvg-id": "", "tvg-name": "BBC One", "group-title": "BBC"},
        )
        assert format_extinf(record) == '#EXTINF:-1 tvg-name="BBC One" group-title="BBC",BBC One'

    def test_group_title_always_written(self):
        record = PlaylistRecord(stream="http://x", attributes={"tvg-name": "[VIP]", "group-title": ""})
        assert format_extinf(record) == '#EXTINF:-1 tvg-name="[VIP]" group-title="",[VIP]'

    def test_extra_attributes_are_not_written(self):
        record = PlaylistRecord(
            stream="http://x",
            attributes={"tvg-name": "A", "group-title": "G", "catchup": "default"},
        )
        assert "catchup" not in format_extinf(record)


class TestWriteM3U:
    """Playlist files."""

    def test_writes_header_and_pairs(self, tmp_path):
        destination = tmp_path / "out" / "demo-sports.m3u"
        records = [
            PlaylistRecord(stream="http://a", attributes={"tvg-id": "a", "tvg-name": "A", "group-title": "G"}),
            PlaylistRecord(stream="http://b", attributes={"tvg-name": "B", "group-title": "G"}),
        ]

        count = write_m3u(destination, iter(records))

        assert count == 2
        assert destination.read_text(encoding="utf-8") == (
            "#EXTM3U\n"
            '#EXTINF:-1 tvg-id="a" tvg-name="A" group-title="G",A\n'
            "http://a\n"
            '#EXTINF:-1 tvg-name="B" group-title="G",B\n'
            "http://b\n"
        )
        assert list(destination.parent.iterdir()) == [destination]

    def test_empty_playlist(self, tmp_path):
        destination = tmp_path / "empty.m3u"
        assert write_m3u(destination, []) == 0
        assert destination.read_text(encoding="utf-8") == "#EXTM3U\n"

    def test_failure_keeps_previous_file(self, tmp_path):
        destination = tmp_path / "demo.m3u"
        destination.write_text("previous", encoding="utf-8")

        def _broken():
            yield PlaylistRecord(stream="http://a", attributes={"tvg-name": "A", "group-title": "G"})
            raise RuntimeError("upstream failure")

        with pytest.raises(RuntimeError):
            write_m3u(destination, _broken())

        assert destination.read_text(encoding="utf-8") == "previous"
        assert list(tmp_path.iterdir()) == [destination]
