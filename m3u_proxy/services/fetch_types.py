"""
Shared dataclasses used across the playlist pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field


STREAM_FIELD = "stream"


@dataclass(slots=True)
class PlaylistRecord:
    """One EXTINF + URL pair from an M3U playlist.

    ``attributes`` holds the ``key="value"`` pairs of the EXTINF line
    (``tvg-id``, ``tvg-name``, ``tvg-logo``, ``group-title``...). The stream
    URL is exposed to rules under the field name ``stream``.
    """
    stream: str
    label: str = ""
    attributes: dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str | None:
        if name == STREAM_FIELD:
            return self.stream
        return self.attributes.get(name)

    def set(self, name: str, value: str) -> None:
        if name == STREAM_FIELD:
            self.stream = value
        else:
            self.attributes[name] = value

    def has(self, name: str) -> bool:
        return name == STREAM_FIELD or name in self.attributes

    @property
    def tvg_id(self) -> str | None:
        return self.attributes.get("tvg-id")

    @property
    def display_name(self) -> str:
        """Label written after the EXTINF attributes"""
        return self.attributes.get("tvg-name", self.label)

    def as_dict(self) -> dict[str, str]:
        return {**self.attributes, STREAM_FIELD: self.stream}


@dataclass(slots=True)
class EpgFilterStats:
    """Counters reported by one EPG filter pass."""
    channels_seen: int = 0
    channels_kept: int = 0
    programmes_seen: int = 0
    programmes_kept: int = 0
    invalid_timestamps: int = 0


__all__ = ["STREAM_FIELD", "PlaylistRecord", "EpgFilterStats"]
