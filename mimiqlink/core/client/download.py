"""Streaming file downloads with progress reporting."""

import logging
import urllib.parse
from email.message import Message
from pathlib import Path
from typing import Mapping, Optional, Union

import requests

from .utils import check_response
from mimiqlink.vis.terminal import TerminalPrinter

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def filename_from_response(response: requests.Response, url: str) -> str:
    """Local file name from Content-Disposition, else the last URL segment."""
    disposition = response.headers.get("Content-Disposition")
    if disposition:
        msg = Message()
        msg["Content-Disposition"] = disposition
        name = msg.get_filename()
        if name:
            return Path(name).name
    segment = urllib.parse.urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
    return Path(urllib.parse.unquote(segment)).name or "download"


def expected_size(response: requests.Response) -> Optional[int]:
    """Total size in bytes, or None when unknown.

    A gzip encoded body is decompressed while streaming, so its
    Content-Length says nothing about the size written to disk.
    """
    if response.headers.get("Content-Encoding", "").lower() == "gzip":
        return None
    length = response.headers.get("Content-Length")
    try:
        return int(length) if length is not None else None
    except ValueError:
        return None


def download_file(
    session: requests.Session,
    url: str,
    dest_dir: Union[str, Path],
    headers: Optional[Mapping[str, str]] = None,
    printer: Optional[TerminalPrinter] = None,
) -> Path:
    """Stream `url` into `dest_dir` and return the written path.

    A partially written file is left in place if the transfer fails.
    """
    logger.debug("Downloading %s", url)
    printer = printer or TerminalPrinter()
    with session.get(url, headers=dict(headers or {}), stream=True) as response:
        check_response(response, "Error downloading file")
        path = Path(dest_dir) / filename_from_response(response, url)
        total = expected_size(response)
        with printer.download_progress() as progress:
            task = progress.add_task(path.name, total=total)
            with open(path, "wb") as fh:
                # iter_content transparently decodes gzip content
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
                        progress.update(task, advance=len(chunk))
    return path
