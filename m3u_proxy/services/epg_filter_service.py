"""
EPG Streaming Filter

Streams an XMLTV guide element by element and writes a new guide holding only
the channels referenced by a playlist and the programmes of those channels
that overlap the retention window. The source tree is never fully built:
each element is released as soon as it has been handled.
"""
from __future__ import annotations

import asyncio
import gzip
import logging
import threading
from collections.abc import Collection, Iterator
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from lxml import etree # type: ignore

from m3u_proxy.services.fetch_types import EpgFilterStats
from m3u_proxy.utils.file_operations import atomic_output
from m3u_proxy.utils.timezone import TimeWindow, TimestampParseError, build_time_window, parse_xmltv_time, utc_now

logger = logging.getLogger(__name__)

XMLTV_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE tv SYSTEM "xmltv.dtd">\n<tv>\n'
XMLTV_FOOTER = '</tv>'

EPG_TAGS = ("channel", "programme")
GZIP_MAGIC = b"\x1f\x8b"


class EpgFilterCancelled(RuntimeError):
    """Raised inside the filter thread when the caller abandoned the pass"""
    pass


def _open_guide(file_path: Path) -> BinaryIO:
    """Open a guide for reading, decompressing gzip transparently"""
    with file_path.open("rb") as probe:
        magic = probe.read(2)
    if magic == GZIP_MAGIC:
        logger.debug(f"  {file_path.name} is gzip-compressed")
        return gzip.open(file_path, "rb")
    return file_path.open("rb")


def iter_epg_elements(file_path: Path | str) -> Iterator[etree._Element]:
    """
    Yield ``channel`` and ``programme`` elements in document order

    Each element is cleared (and detached from its predecessors) once the
    consumer asks for the next one, so use or serialize it before moving on.
    Malformed markup is recovered on a best-effort basis.

    Raises:
        FileNotFoundError: If file doesn't exist
        OSError: If file can't be read
    """
    file_path = Path(file_path)
    with _open_guide(file_path) as f:
        context = etree.iterparse(
            f,
            events=("end",),
            tag=EPG_TAGS,
            recover=True,
            huge_tree=True,
            resolve_entities=False,
            no_network=True,
        )
        for _, elem in context:
            yield elem
            elem.clear(keep_tail=True)
            parent = elem.getparent()
            if parent is not None:
                while elem.getprevious() is not None:
                    del parent[0]


def channel_is_retained(channel: etree._Element, channel_ids: Collection[str]) -> bool:
    """Channels need a non-empty id present in the allow-set"""
    channel_id = channel.get("id")
    return bool(channel_id) and channel_id in channel_ids


def programme_is_retained(programme: etree._Element, channel_ids: Collection[str], window: TimeWindow) -> bool:
    """
    Check channel membership and overlap with the time window

    Raises:
        TimestampParseError: If start or stop is not a valid XMLTV timestamp
    """
    if programme.get("channel") not in channel_ids:
        return False

    start_time = parse_xmltv_time(programme.get("start"))
    stop_time = parse_xmltv_time(programme.get("stop"))
    return window.overlaps(start_time, stop_time)


def serialize_element(elem: etree._Element) -> str:
    return etree.tostring(elem, encoding="unicode", with_tail=False)


def filter_epg(
    source_path: Path | str,
    destination: Path | str,
    channel_ids: Collection[str],
    now: datetime | None = None,
    *,
    past_hours: int = 1,
    future_hours: int = 48,
    cancel_event: threading.Event | None = None,
) -> EpgFilterStats:
    """
    Write a filtered copy of an XMLTV guide

    Args:
        source_path: Raw XMLTV input (plain or gzip)
        destination: Output guide path, replaced atomically on success
        channel_ids: tvg-ids of the retained playlist streams
        now: Reference instant for the time window (defaults to current UTC time)

    Keyword Args:
        past_hours: Keep programmes stopping no earlier than now - past_hours
        future_hours: Keep programmes starting before now + future_hours
        cancel_event: When set, the pass stops and the destination is left untouched

    Returns:
        EpgFilterStats with seen/kept counters
    """
    source_path = Path(source_path)
    destination = Path(destination)
    allowed = frozenset(channel_id for channel_id in channel_ids if channel_id)
    window = build_time_window(now or utc_now(), past_hours, future_hours)
    stats = EpgFilterStats()

    logger.info(f"Filtering EPG {source_path} -> {destination}")
    logger.debug(f"  {len(allowed)} channel id(s), window {window.start.isoformat()} -> {window.end.isoformat()}")

    with atomic_output(destination) as out:
        out.write(XMLTV_HEADER)
        for elem in iter_epg_elements(source_path):
            if cancel_event is not None and cancel_event.is_set():
                raise EpgFilterCancelled(f"EPG filter for {source_path} cancelled")

            if elem.tag == "channel":
                stats.channels_seen += 1
                if not channel_is_retained(elem, allowed):
                    continue
                stats.channels_kept += 1
            else:
                stats.programmes_seen += 1
                try:
                    if not programme_is_retained(elem, allowed, window):
                        continue
                except TimestampParseError as e:
                    stats.invalid_timestamps += 1
                    logger.debug(f"  Skipping programme on '{elem.get('channel')}': {e}")
                    continue
                stats.programmes_kept += 1

            out.write(serialize_element(elem))
            out.write("\n")
        out.write(XMLTV_FOOTER)

    if stats.invalid_timestamps:
        logger.warning(f"  {stats.invalid_timestamps} programme(s) with invalid timestamps skipped")
    logger.info(
        f"EPG filtering complete: {stats.channels_kept}/{stats.channels_seen} channels, "
        f"{stats.programmes_kept}/{stats.programmes_seen} programmes"
    )
    return stats


async def filter_epg_async(
    source_path: Path | str,
    destination: Path | str,
    channel_ids: Collection[str],
    now: datetime | None = None,
    *,
    past_hours: int = 1,
    future_hours: int = 48,
    timeout_seconds: int | None = None,
) -> EpgFilterStats:
    """
    Run the EPG filter in the thread pool with timeout protection.

    On timeout the worker is told to stop; it abandons its temporary file and
    the previous output stays in place.

    Raises:
        ValueError: If filtering times out
    """
    effective_timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
    cancel_event = threading.Event()

    loop = asyncio.get_running_loop()
    filter_task = loop.run_in_executor(
        None,
        lambda: filter_epg(
            source_path,
            destination,
            channel_ids,
            now,
            past_hours=past_hours,
            future_hours=future_hours,
            cancel_event=cancel_event,
        ),
    )

    try:
        if effective_timeout:
            return await asyncio.wait_for(filter_task, timeout=effective_timeout)
        return await filter_task
    except asyncio.TimeoutError:
        logger.error(f"EPG filtering timed out after {effective_timeout}s for {source_path}")
        raise ValueError("EPG filtering timed out - file may be too large or malformed")
    finally:
        # No-op once the worker has finished
        cancel_event.set()
