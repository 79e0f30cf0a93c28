"""
Record Filter/Transform Pipeline

Applies a compiled model to a stream of playlist records: keep the records
matched by at least one filter, then rewrite their fields with the model's
transformations in declared order.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from m3u_proxy.services.fetch_types import PlaylistRecord
from m3u_proxy.services.rule_compiler_service import CompiledModel


logger = logging.getLogger(__name__)


class MissingFieldError(KeyError):
    """Raised when a transformation targets a field the record does not carry"""

    def __init__(self, field: str, record: PlaylistRecord):
        self.field = field
        self.record = record
        super().__init__(field)

    def __str__(self) -> str:
        return f"Field '{self.field}' missing on record '{self.record.display_name}' ({self.record.stream})"


def record_matches(model: CompiledModel, record: PlaylistRecord) -> bool:
    """Check if at least one filter matches (always true without filters)"""
    if model.passes_all:
        return True

    for rule in model.filters:
        value = record.get(rule.field)
        if value is not None and rule.regex.search(value):
            return True
    return False


def apply_transformations(model: CompiledModel, record: PlaylistRecord) -> PlaylistRecord:
    """
    Rewrite record fields in place, one transformation after the other

    Each transformation replaces the first match only and sees the value
    left by the previous ones.

    Raises:
        MissingFieldError: If a transformation targets an absent field
    """
    for rule in model.transformations:
        value = record.get(rule.field)
        if value is None:
            raise MissingFieldError(rule.field, record)
        record.set(rule.field, rule.regex.sub(rule.replacement, value, count=1))
    return record


def run_pipeline(model: CompiledModel, records: Iterable[PlaylistRecord]) -> Iterator[PlaylistRecord]:
    """
    Filter and transform records for one model

    Records failing a transformation are logged and skipped.

    Args:
        model: Compiled model
        records: Parsed records (mutated in place when retained)

    Yields:
        Retained, transformed records in input order
    """
    seen = 0
    kept = 0
    failed = 0

    for record in records:
        seen += 1
        if not record_matches(model, record):
            continue

        try:
            apply_transformations(model, record)
        except MissingFieldError as e:
            logger.warning(f"[Model '{model.name}'] Transformation skipped record: {e}")
            failed += 1
            continue

        kept += 1
        yield record

    logger.debug(f"[Model '{model.name}'] {kept}/{seen} records retained ({failed} failed)")
