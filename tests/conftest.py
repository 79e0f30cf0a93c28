"""
Shared fixtures for m3u-proxy tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from m3u_proxy.services.refresh_coordinator import reset_refresh_coordinator


NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

SAMPLE_PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="espn.us" tvg-name="HD ESPN" tvg-logo="http://logos/espn.png" group-title="Sports News",ESPN
http://streams/espn
#EXTINF:-1 tvg-id="cnn.us" tvg-name="CNN" group-title="News",CNN International
http://streams/cnn
#EXTINF:-1,BBC One HD
http://streams/bbc1
#EXTINF:-1 tvg-id="fox.sports" tvg-name="Fox Sports 1" group-title="Sports",Fox Sports 1
http://streams/fs1
"""


def xmltv_time(value: datetime, offset: str = "+0000") -> str:
    return value.strftime("%Y%m%d%H%M%S") + f" {offset}"


def programme(channel: str, start: str, stop: str, title: str) -> str:
    return (
        f'  <programme start="{start}" stop="{stop}" channel="{channel}">\n'
        f'    <title lang="en">{title}</title>\n'
        f'  </programme>\n'
    )


def build_guide(now: datetime = NOW) -> str:
    """Guide with a mix of in-window, stale, future and broken programmes"""
    hours = lambda n: xmltv_time(now + timedelta(hours=n))  # noqa: E731
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<!DOCTYPE tv SYSTEM "xmltv.dtd">\n'
        '<tv generator-info-name="test">\n'
        '  <channel id="espn.us">\n    <display-name>ESPN</display-name>\n  </channel>\n'
        '  <channel id="">\n    <display-name>No id</display-name>\n  </channel>\n'
        '  <channel id="cnn.us">\n    <display-name>CNN</display-name>\n  </channel>\n'
        '  <channel id="fox.sports">\n    <display-name>FS1</display-name>\n  </channel>\n'
        + programme("espn.us", hours(47), hours(50), "Late Night")
        + programme("espn.us", hours(-5), hours(-2), "Old News")
        + programme("espn.us", hours(-3), hours(-0.5), "Just Finished")
        + programme("cnn.us", hours(1), hours(2), "World Report")
        + programme("espn.us", "garbage", hours(2), "Broken")
        + programme("espn.us", hours(49), hours(50), "Too Far")
        + programme("fox.sports", hours(0), hours(1), "Match")
        + '</tv>\n'
    )


@pytest.fixture(autouse=True)
def _reset_coordinator():
    reset_refresh_coordinator()
    yield
    reset_refresh_coordinator()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def playlist_file(tmp_path):
    path = tmp_path / "source.m3u"
    path.write_text(SAMPLE_PLAYLIST, encoding="utf-8")
    return path


@pytest.fixture
def guide_file(tmp_path):
    path = tmp_path / "source.xml"
    path.write_text(build_guide(), encoding="utf-8")
    return path
