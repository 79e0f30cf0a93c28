"""
Command line entry point

    m3u-proxy [run] [-c config.json]    one full refresh, then exit
    m3u-proxy serve [-c config.json]    HTTP API plus scheduled refreshes
"""
import argparse
import asyncio
import logging

from m3u_proxy.config import settings, setup_logging


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="m3u-proxy",
        description="Rebuild filtered IPTV playlists and matching XMLTV guides",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("run", "serve"),
        default="run",
        help="run: one refresh and exit (default); serve: HTTP API with scheduled refreshes",
    )
    parser.add_argument("-c", "--config", help=f"Proxy config file (default: {settings.config_path})")
    parser.add_argument("--log-level", help=f"Logging level (default: {settings.log_level})")
    parser.add_argument("--host", default=settings.http_host, help="Bind address for serve")
    parser.add_argument("--port", type=int, default=settings.http_port, help="Port for serve")
    return parser


def run_once() -> int:
    """Run one refresh, return the process exit code"""
    from m3u_proxy.services.source_pipeline_service import refresh_and_process

    result = asyncio.run(refresh_and_process(trigger="cli"))
    if "error" in result:
        logger.error(f"Refresh failed: {result['error']}")
        return 1
    return 1 if result.get("sources_failed") else 0


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("m3u_proxy.main:app", host=host, port=port, log_config=None)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.config:
        settings.config_path = args.config
    if args.log_level:
        settings.log_level = args.log_level.upper()
    setup_logging()

    if args.command == "serve":
        return serve(args.host, args.port)
    return run_once()
