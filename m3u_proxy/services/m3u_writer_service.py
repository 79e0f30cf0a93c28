"""
M3U Serializer

Writes retained playlist records back as an EXTINF playlist.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from m3u_proxy.services.fetch_types import PlaylistRecord
from m3u_proxy.utils.file_operations import atomic_output


logger = logging.getLogger(__name__)

# Written before group-title, which is always present
OPTIONAL_ATTRIBUTES = ("tvg-id", "tvg-name", "tvg-logo")


def format_extinf(record: PlaylistRecord) -> str:
    """Render the EXTINF line of a record (without newline)"""
    parts = ["#EXTINF:-1"]
    for key in OPTIONAL_ATTRIBUTES:
        value = record.attributes.get(key)
        if value:
            parts.append(f' {key}="{value}"')
    parts.append(f' group-title="{record.attributes.get("group-title", "")}",{record.display_name}')
    return "".join(parts)


def write_records(out: TextIO, records: Iterable[PlaylistRecord]) -> int:
    """Write header and records to an open text stream, return record count"""
    out.write("#EXTM3U\n")
    count = 0
    for record in records:
        out.write(format_extinf(record))
        out.write("\n")
        out.write(f"{record.stream}\n")
        count += 1
    return count


def write_m3u(destination: Path | str, records: Iterable[PlaylistRecord]) -> int:
    """
    Write records to an M3U file

    The playlist is staged in a temporary file and moved over the destination
    once fully written and closed.

    Args:
        destination: Output playlist path
        records: Records to serialize (may be a lazy iterator)

    Returns:
        Number of records written
    """
    destination = Path(destination)
    logger.debug(f"Writing M3U file: {destination}")

    with atomic_output(destination) as out:
        count = write_records(out, records)

    logger.info(f"Wrote {count} records to {destination}")
    return count
