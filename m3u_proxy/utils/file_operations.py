"""
File operation utilities

This module handles downloads into the import folder and atomic writes of
generated files. Nothing is ever left half-written at a final path: data goes
to a ``.tmp`` sibling first and is renamed over the destination on success.
Generated files get a unique staging name per write, so an abandoned writer
never touches the staging file of a later one.
"""
import asyncio
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

import aiofiles
import httpx

from m3u_proxy.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class FetchError(RuntimeError):
    """Raised when a remote resource cannot be downloaded or staged"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {sanitize_url_for_logging(url)}: {reason}")


def temporary_path_for(destination: Path) -> Path:
    """Staging path used while ``destination`` is being written"""
    return destination.with_name(destination.name + TEMP_SUFFIX)


def prepare_directory(path: Path | str) -> Path:
    """
    Create a directory (and parents) if needed

    Args:
        path: Directory to create

    Returns:
        The directory as a Path
    """
    path = Path(path)
    if not path.is_dir():
        logger.debug(f"Creating directory {path}")
    path.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def atomic_output(destination: Path, encoding: str = "utf-8") -> Iterator[TextIO]:
    """
    Open a text file for writing that replaces ``destination`` on success

    The data is written to a uniquely named temporary sibling; it only replaces the
    destination once the block completes and the file is closed. On error
    the temporary file is removed and the destination is left untouched.
    """
    prepare_directory(destination.parent)
    out = tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        newline="\n",
        dir=destination.parent,
        prefix=f".{destination.name}.",
        suffix=TEMP_SUFFIX,
        delete=False,
    )
    temp_file = Path(out.name)
    try:
        with out:
            yield out
            out.flush()
        # NamedTemporaryFile creates 0600 files
        os.chmod(temp_file, 0o644)
        os.replace(temp_file, destination)
    except BaseException:
        cleanup_temp_file(temp_file)
        raise


async def download_file(
    url: str,
    destination: Path | str,
    timeout: float = 120.0,
    max_retries: int = 1,
    backoff_factor: float = 2.0
) -> Path:
    """
    Download a file from URL and atomically replace the destination

    The body is streamed to ``<destination>.tmp`` which is renamed over the
    destination only after the full download succeeded. With ``max_retries``
    above one, transient network errors and 5xx responses are retried with
    exponential backoff. 4xx responses are never retried.

    Args:
        url: URL to download from
        destination: Final path of the downloaded file
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)

    Returns:
        Path to the downloaded file

    Raises:
        FetchError: If the download or the staging of the file fails
    """
    destination = Path(destination)
    safe_url = sanitize_url_for_logging(url)
    logger.info(f"Downloading {safe_url} to {destination}...")

    try:
        prepare_directory(destination.parent)
    except OSError as e:
        raise FetchError(url, f"cannot prepare {destination.parent}: {e}") from e

    temp_file = temporary_path_for(destination)
    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            size = 0
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    async with aiofiles.open(temp_file, 'wb') as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
                            size += len(chunk)

            os.replace(temp_file, destination)
            logger.info(f"Downloaded {size / (1024 * 1024):.2f} MB to {destination}")
            return destination

        except httpx.TransportError as e:
            # Transient network errors - retry
            cleanup_temp_file(temp_file)
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1}/{max_retries} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)

        except httpx.HTTPStatusError as e:
            cleanup_temp_file(temp_file)
            status = e.response.status_code
            # HTTP errors - don't retry on 4xx (client error), retry on 5xx (server error)
            if 400 <= status < 500:
                logger.error(f"HTTP {status} (client error) for {safe_url}")
                raise FetchError(url, f"HTTP {status}") from e

            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1}/{max_retries} failed "
                    f"(HTTP {status} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)

        except OSError as e:
            cleanup_temp_file(temp_file)
            raise FetchError(url, f"cannot write {destination}: {e}") from e

        except BaseException:
            cleanup_temp_file(temp_file)
            raise

    logger.error(f"Download of {safe_url} failed after {max_retries} attempt(s)")
    if isinstance(last_error, httpx.HTTPStatusError):
        raise FetchError(url, f"HTTP {last_error.response.status_code}") from last_error
    raise FetchError(url, f"{type(last_error).__name__}: {last_error}") from last_error


def cleanup_temp_file(file_path: Path) -> bool:
    """
    Safely delete a temporary file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False
