"""
Source Pipeline Service

Runs a full refresh: for each configured source, download the playlist, build
every model's playlist concurrently, then download and filter the guide using
the channel ids retained by the source's EPG model.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from m3u_proxy.config import ConfigError, load_proxy_config, settings
from m3u_proxy.schemas import Model, ProxyConfig, Source
from m3u_proxy.services.epg_filter_service import filter_epg_async
from m3u_proxy.services.fetch_types import EpgFilterStats, PlaylistRecord
from m3u_proxy.services.m3u_parser_service import parse_m3u_file
from m3u_proxy.services.m3u_writer_service import write_m3u
from m3u_proxy.services.record_pipeline_service import run_pipeline
from m3u_proxy.services.refresh_coordinator import get_refresh_coordinator
from m3u_proxy.services.rule_compiler_service import compile_model
from m3u_proxy.utils.file_operations import FetchError, download_file, prepare_directory
from m3u_proxy.utils.logging_helpers import (
    log_run_end,
    log_run_start,
    log_run_summary,
    log_section_end,
    log_section_start,
    log_source_processing,
    sanitize_url_for_logging,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ModelSummary:
    model_name: str
    output_path: Path
    status: Literal["success", "failed", "skipped"]
    records_written: int = 0
    error: str | None = None
    channel_ids: set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        payload = {
            "model": self.model_name,
            "output": str(self.output_path),
            "status": self.status,
            "records_written": self.records_written,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class SourceSummary:
    index: int
    name: str
    started_at: datetime
    completed_at: datetime | None = None
    m3u_status: Literal["success", "failed"] = "success"
    epg_status: Literal["success", "failed", "skipped"] = "skipped"
    models: list[ModelSummary] = field(default_factory=list)
    epg_stats: EpgFilterStats | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> Literal["success", "partial", "failed"]:
        if not self.errors:
            return "success"
        if any(model.status == "success" for model in self.models) or self.epg_status == "success":
            return "partial"
        return "failed"

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def to_dict(self) -> dict:
        payload = {
            "source_index": self.index,
            "source": self.name,
            "status": self.status,
            "m3u_status": self.m3u_status,
            "epg_status": self.epg_status,
            "models": [model.to_dict() for model in self.models],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
        if self.epg_stats is not None:
            payload["epg"] = {
                "channels_kept": self.epg_stats.channels_kept,
                "programmes_kept": self.epg_stats.programmes_kept,
                "invalid_timestamps": self.epg_stats.invalid_timestamps,
            }
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


def _collect_ids(records: Iterable[PlaylistRecord], channel_ids: set[str]) -> Iterator[PlaylistRecord]:
    for record in records:
        if record.tvg_id:
            channel_ids.add(record.tvg_id)
        yield record


def process_model(input_path: Path, output_path: Path, model: Model) -> tuple[int, set[str]]:
    """
    Parse, filter, transform and write one model's playlist

    Returns:
        Tuple of (records written, tvg-ids of the written records)

    Raises:
        RuleCompilationError: If one of the model's patterns is invalid
        OSError: If the input can't be read or the output can't be written
    """
    compiled = compile_model(model)
    channel_ids: set[str] = set()
    records = run_pipeline(compiled, parse_m3u_file(input_path))
    count = write_m3u(output_path, _collect_ids(records, channel_ids))
    return count, channel_ids


def collect_channel_ids(input_path: Path, model: Model) -> set[str]:
    """tvg-ids a model retains from a playlist, without writing anything"""
    compiled = compile_model(model)
    return {
        record.tvg_id
        for record in run_pipeline(compiled, parse_m3u_file(input_path))
        if record.tvg_id
    }


class SourcePipeline:
    """Coordinates download, playlist and guide stages for every source."""

    def __init__(self, config: ProxyConfig, *, now: datetime | None = None) -> None:
        self.config = config
        self.total_sources = len(config.sources)
        self._now = now

    async def run(self) -> dict:
        log_run_start(logger)
        started_at = datetime.now(timezone.utc)

        prepare_directory(self.config.import_folder)
        prepare_directory(self.config.export_folder)

        summaries = []
        for index, source in enumerate(self.config.sources, start=1):
            log_source_processing(logger, index, self.total_sources, source.name)
            summaries.append(await self._process_source(index, source))

        result = self._build_result(started_at, summaries)
        log_run_summary(
            logger,
            result["sources_succeeded"],
            result["sources_failed"],
            result["playlists_written"],
        )
        log_run_end(logger)
        return result

    async def _download(self, url: str, destination: Path) -> Path:
        return await download_file(
            url,
            destination,
            timeout=settings.download_timeout_sec,
            max_retries=settings.download_max_retries,
            backoff_factor=settings.download_backoff_factor,
        )

    async def _process_source(self, index: int, source: Source) -> SourceSummary:
        summary = SourceSummary(index=index, name=source.name, started_at=datetime.now(timezone.utc))

        try:
            m3u_path = self.config.import_m3u_path(source)
            try:
                await self._download(source.m3u, m3u_path)
            except FetchError as exc:
                logger.error("[Source %s] Playlist download failed: %s", source.name, exc)
                summary.m3u_status = "failed"
                summary.errors.append(str(exc))
                summary.models = [
                    ModelSummary(
                        model_name=model.name,
                        output_path=self.config.export_m3u_path(source, model),
                        status="skipped",
                    )
                    for model in source.models
                ]
            else:
                summary.models = await self._run_models(source, m3u_path)
                summary.errors.extend(
                    f"Model '{model.model_name}': {model.error}"
                    for model in summary.models
                    if model.status == "failed"
                )

            if source.epg:
                await self._process_epg(source, summary)
        except Exception as exc:  # Source boundary: never abort the remaining sources
            logger.error("[Source %s] Failed to process: %s", source.name, exc, exc_info=True)
            summary.errors.append(str(exc))

        summary.completed_at = datetime.now(timezone.utc)
        logger.info(
            "[Source %s] %s in %.1fs",
            source.name,
            summary.status,
            summary.duration_seconds,
        )
        return summary

    async def _run_models(self, source: Source, m3u_path: Path) -> list[ModelSummary]:
        log_section_start(logger, f"{len(source.models)} playlist model(s) for {source.name}")
        tasks = [
            asyncio.create_task(self._run_model(source, model, m3u_path))
            for model in source.models
        ]
        summaries = await asyncio.gather(*tasks)
        log_section_end(logger, f"playlist models for {source.name}")
        return list(summaries)

    async def _run_model(self, source: Source, model: Model, m3u_path: Path) -> ModelSummary:
        output_path = self.config.export_m3u_path(source, model)
        label = f"{source.name}{model.name}"
        logger.info("[Model %s] Building %s", label, output_path)

        loop = asyncio.get_running_loop()
        try:
            count, channel_ids = await loop.run_in_executor(
                None, process_model, m3u_path, output_path, model
            )
        except Exception as exc:
            logger.error("[Model %s] Failed: %s", label, exc, exc_info=True)
            return ModelSummary(
                model_name=model.name,
                output_path=output_path,
                status="failed",
                error=str(exc),
            )

        logger.info("[Model %s] Wrote %s records (%s channel ids)", label, count, len(channel_ids))
        return ModelSummary(
            model_name=model.name,
            output_path=output_path,
            status="success",
            records_written=count,
            channel_ids=channel_ids,
        )

    async def _process_epg(self, source: Source, summary: SourceSummary) -> None:
        epg_model = source.get_epg_model()
        epg_path = self.config.import_epg_path(source)
        output_path = self.config.export_epg_path(source)
        logger.info(
            "[Source %s] Guide %s scoped by model '%s'",
            source.name,
            sanitize_url_for_logging(source.epg),
            epg_model.name,
        )

        try:
            await self._download(source.epg, epg_path)

            designated = next(
                (
                    model for model in summary.models
                    if model.model_name == epg_model.name and model.status == "success"
                ),
                None,
            )
            if designated is not None:
                channel_ids = designated.channel_ids
            else:
                logger.info(
                    "[Source %s] Model '%s' has no fresh result; re-reading %s for channel ids",
                    source.name,
                    epg_model.name,
                    self.config.import_m3u_path(source),
                )
                loop = asyncio.get_running_loop()
                channel_ids = await loop.run_in_executor(
                    None, collect_channel_ids, self.config.import_m3u_path(source), epg_model
                )

            summary.epg_stats = await filter_epg_async(
                epg_path,
                output_path,
                channel_ids,
                self._now,
                past_hours=settings.epg_past_hours,
                future_hours=settings.epg_future_hours,
                timeout_seconds=settings.epg_filter_timeout_sec,
            )
            summary.epg_status = "success"
        except Exception as exc:
            logger.error("[Source %s] Guide processing failed: %s", source.name, exc, exc_info=True)
            summary.epg_status = "failed"
            summary.errors.append(f"EPG: {exc}")

    def _build_result(self, started_at: datetime, summaries: list[SourceSummary]) -> dict:
        succeeded = sum(1 for summary in summaries if summary.status == "success")
        playlists = sum(
            1
            for summary in summaries
            for model in summary.models
            if model.status == "success"
        )

        return {
            "status": "success",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sources_processed": len(summaries),
            "sources_succeeded": succeeded,
            "sources_failed": len(summaries) - succeeded,
            "playlists_written": playlists,
            "guides_written": sum(1 for summary in summaries if summary.epg_status == "success"),
            "source_details": [summary.to_dict() for summary in summaries],
            "started_at": started_at.isoformat(),
        }


async def refresh_and_process(config_path: str | Path | None = None, trigger: str = "manual") -> dict:
    """
    Main entry point for a full refresh with concurrency protection.

    Args:
        config_path: Proxy config file (defaults to CONFIG_PATH)
        trigger: Recorded by the coordinator (api, scheduler, cli)

    Returns:
        Dictionary with run statistics or error/skip message.
    """
    async def _refresh() -> dict:
        try:
            config = load_proxy_config(config_path or settings.config_path)
        except ConfigError as exc:
            logger.error("Refresh aborted: %s", exc)
            return {"error": str(exc)}

        if not config.sources:
            logger.warning("No sources configured - refresh aborted")
            return {"error": "No sources configured"}

        pipeline = SourcePipeline(config)
        try:
            return await pipeline.run()
        except Exception as exc:  # Catch-all to ensure API stability
            logger.error("Unexpected error during refresh: %s", exc, exc_info=True)
            return {"error": str(exc)}

    return await get_refresh_coordinator().execute(_refresh, trigger=trigger)
