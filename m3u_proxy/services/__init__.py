"""
Services package for m3u-proxy

This package contains the playlist/guide transformation core and the
refresh orchestration built on top of it.
"""
from m3u_proxy.services.epg_filter_service import filter_epg, iter_epg_elements
from m3u_proxy.services.m3u_parser_service import parse_m3u, parse_m3u_file
from m3u_proxy.services.m3u_writer_service import write_m3u
from m3u_proxy.services.record_pipeline_service import run_pipeline
from m3u_proxy.services.rule_compiler_service import compile_model
from m3u_proxy.services.scheduler_service import refresh_scheduler
from m3u_proxy.services.source_pipeline_service import SourcePipeline, refresh_and_process

__all__ = [
    'compile_model',
    'parse_m3u',
    'parse_m3u_file',
    'run_pipeline',
    'write_m3u',
    'filter_epg',
    'iter_epg_elements',
    'SourcePipeline',
    'refresh_and_process',
    'refresh_scheduler',
]
