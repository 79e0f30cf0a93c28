"""
M3U Parser

Turns EXTINF-style playlist text into PlaylistRecord objects, one per
EXTINF + URL line pair. Records are produced lazily so large playlists are
never held in memory by the parser itself.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

from m3u_proxy.services.fetch_types import PlaylistRecord


logger = logging.getLogger(__name__)

M3U_FILE_PREFIX = "#EXTM3U"
M3U_PREFIX = "#EXTINF"

# Duration, then up to five key="value" pairs, then the label after the last comma
_ATTRIBUTE = r'(?: *?([\w-]*)="(.*?)")?'
M3U_FIELDS = re.compile(r'^#EXTINF:-?\d+,?' + _ATTRIBUTE * 5 + r'.*,(.*)')
MAX_ATTRIBUTES = 5

_LEADING_WORD = re.compile(r'\w*', re.ASCII)


class RecordExtractionError(ValueError):
    """Raised when an EXTINF line does not follow the expected field grammar"""

    def __init__(self, line: str, line_number: int | None = None):
        self.line = line
        self.line_number = line_number
        where = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"Malformed EXTINF line{where}: {line!r}")


def extract_fields(line: str, line_number: int | None = None) -> tuple[dict[str, str], str]:
    """
    Extract attributes and trailing label from one EXTINF line

    Args:
        line: EXTINF line like '#EXTINF:-1 tvg-id="a" group-title="b",Label'
        line_number: Optional position in the file, for error reporting

    Returns:
        Tuple of (attributes, label)

    Raises:
        RecordExtractionError: If the line does not match the EXTINF grammar
    """
    matches = M3U_FIELDS.match(line)
    if matches is None:
        raise RecordExtractionError(line, line_number)

    attributes = {}
    for i in range(1, MAX_ATTRIBUTES * 2, 2):
        key = matches.group(i)
        if key:
            attributes[key] = matches.group(i + 1)

    label = matches.group(MAX_ATTRIBUTES * 2 + 1).strip()
    return attributes, label


def derive_defaults(record: PlaylistRecord) -> PlaylistRecord:
    """Fill in tvg-name from the label and group-title from tvg-name"""
    if not record.attributes.get("tvg-name"):
        record.attributes["tvg-name"] = record.label
    if not record.attributes.get("group-title"):
        # Compact playlists carry no group-title
        record.attributes["group-title"] = _LEADING_WORD.match(record.attributes["tvg-name"]).group(0)
    return record


class _PendingRecord:
    """Fields collected from EXTINF lines while waiting for the URL line"""

    def __init__(self) -> None:
        self.attributes: dict[str, str] = {}
        self.label = ""
        self.started = False
        self.malformed = False

    def to_record(self, stream: str) -> PlaylistRecord:
        return derive_defaults(
            PlaylistRecord(stream=stream, label=self.label, attributes=self.attributes)
        )


def parse_m3u(lines: Iterable[str], source_name: str = "<playlist>") -> Iterator[PlaylistRecord]:
    """
    Parse M3U lines into playlist records

    Args:
        lines: Playlist text, one line per item (line endings are stripped)
        source_name: Name used in log messages

    Yields:
        One PlaylistRecord per EXTINF + URL pair
    """
    pending = _PendingRecord()
    emitted = 0
    skipped = 0

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            continue

        if line.startswith(M3U_FILE_PREFIX):
            continue

        if line.startswith(M3U_PREFIX):
            try:
                attributes, label = extract_fields(line, line_number)
            except RecordExtractionError as e:
                logger.warning(f"[{source_name}] {e}; skipping record")
                pending = _PendingRecord()
                pending.started = True
                pending.malformed = True
                continue

            if pending.malformed:
                pending = _PendingRecord()
            pending.attributes.update(attributes)
            pending.label = label
            pending.started = True
            continue

        # Any other line is the stream URL and closes the pending record
        if not pending.started:
            logger.warning(f"[{source_name}] URL without EXTINF at line {line_number}; skipping: {line.strip()}")
            skipped += 1
        elif pending.malformed:
            logger.debug(f"[{source_name}] Dropping URL of malformed record at line {line_number}")
            skipped += 1
        else:
            emitted += 1
            yield pending.to_record(line.strip())
        pending = _PendingRecord()

    if pending.started and not pending.malformed:
        logger.warning(
            f"[{source_name}] Playlist ended after an EXTINF line without URL; dropping '{pending.label}'"
        )
        skipped += 1

    logger.debug(f"[{source_name}] Parsed {emitted} records ({skipped} skipped)")


def parse_m3u_file(file_path: Path | str) -> Iterator[PlaylistRecord]:
    """
    Parse an M3U file lazily

    The file stays open until the returned iterator is exhausted or closed.

    Raises:
        FileNotFoundError: If the file doesn't exist
        OSError: If the file can't be read
    """
    file_path = Path(file_path)
    logger.debug(f"Parsing M3U file: {file_path}")

    with file_path.open("r", encoding="utf-8", errors="replace") as f:
        yield from parse_m3u(f, source_name=file_path.name)
