"""Image helpers: size probing, grayscale loading and remote downloads."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import NamedTuple, Optional
from urllib.parse import unquote, urlparse

import requests
from PIL import Image

from .config import FETCH_TIMEOUT_S
from .grid import Grid

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class ImageFetchError(Exception):
    """Raised when a remote image cannot be downloaded to the task folder."""


class ImageDecodeError(Exception):
    """Raised when an image file exists but cannot be decoded."""


class ImageSize(NamedTuple):
    width: int
    height: int


def get_image_dimensions(path: str | os.PathLike[str]) -> Optional[ImageSize]:
    """Return the pixel size of ``path`` or ``None``; never raises.

    Only the header is read, so this stays cheap for large scans.
    """

    if not os.path.isfile(path):
        logger.warning("Image file does not exist at path: %s", path)
        return None
    try:
        with Image.open(path) as im:
            width, height = im.size
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        logger.error("Error getting image dimensions for %s: %s", path, exc)
        return None
    if not width or not height:
        return None
    return ImageSize(int(width), int(height))


def load_grayscale(path: str | os.PathLike[str]) -> Grid:
    """Decode ``path`` into an 8-bit grayscale grid."""
    try:
        with Image.open(path) as im:
            return Grid.from_image(im)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"{path}: {exc}") from exc


def is_remote(path: str) -> bool:
    return path.startswith(("http://", "https://"))


def remote_file_name(url: str) -> str:
    name = os.path.basename(unquote(urlparse(url).path))
    if not name:
        raise ImageFetchError(f"Cannot derive a file name from {url}")
    return name


def fetch_remote_image(
    url: str,
    dest_dir: str | os.PathLike[str],
    *,
    timeout: float = FETCH_TIMEOUT_S,
    session: requests.Session | None = None,
) -> str:
    """Download ``url`` into ``dest_dir`` unless the file is already there.

    Returns the local path of the image.
    """

    target = Path(dest_dir) / remote_file_name(url)
    if target.is_file():
        return str(target)

    logger.info("Downloading image from %s", url)
    http = session or requests
    try:
        response = http.get(url, timeout=timeout, stream=True)
    except requests.RequestException as exc:
        raise ImageFetchError(f"Failed to fetch {url}: {exc}") from exc
    if not response.ok:
        raise ImageFetchError(f"Failed to fetch {url}: HTTP {response.status_code}")

    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name(target.name + ".part")
    try:
        with open(partial, "wb") as fh:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                fh.write(chunk)
        partial.replace(target)
    except (OSError, requests.RequestException) as exc:
        partial.unlink(missing_ok=True)
        raise ImageFetchError(f"Failed to store {url} at {target}: {exc}") from exc
    finally:
        response.close()
    return str(target)


__all__ = [
    "ImageSize",
    "ImageFetchError",
    "ImageDecodeError",
    "get_image_dimensions",
    "load_grayscale",
    "is_remote",
    "remote_file_name",
    "fetch_remote_image",
]
