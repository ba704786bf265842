"""
Source image provider.

Downloads the source once into the work directory; every operation then
reopens that local file so no operation sees another one's result.
"""

from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from imageworker.core.exceptions import SourceUnavailable
from imageworker.core.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


def source_filename(url: str) -> str:
    """Basename of the URL path, without the query string."""
    name = Path(unquote(urlparse(url).path)).name
    if not name:
        raise SourceUnavailable(f"Cannot derive a filename from {url!r}", source=url)
    return name


class SourceProvider:
    def __init__(self, work_dir: str, timeout: float = 60.0, client: httpx.Client = None):
        self.work_dir = Path(work_dir)
        self.timeout = timeout
        self._client = client

    def fetch(self, url: str, disable_network: bool = False) -> Path:
        """
        Make the source available locally.

        With `disable_network` the file is expected to already sit in the
        work directory under its URL basename.
        """
        path = self.work_dir / source_filename(url)

        if disable_network:
            if not path.exists():
                raise SourceUnavailable(f"Network disabled and {path} does not exist", source=url)
            logger.info("download_skipped", path=str(path))
            return path

        self.work_dir.mkdir(parents=True, exist_ok=True)
        logger.info("download_started", url=url, path=str(path))

        client = self._client or httpx.Client(timeout=self.timeout, follow_redirects=True)
        try:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(path, "wb") as fout:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        fout.write(chunk)
        except httpx.HTTPError as e:
            path.unlink(missing_ok=True)
            raise SourceUnavailable(f"Failed to download source image: {e}", source=url)
        finally:
            if self._client is None:
                client.close()

        logger.info("download_completed", path=str(path), size_bytes=path.stat().st_size)
        return path

    def open(self, path: Path) -> Image.Image:
        """Fresh handle on the downloaded source."""
        try:
            image = Image.open(path)
            image.load()
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as e:
            raise SourceUnavailable(f"Cannot open source image {path}: {e}", source=str(path))
        return image
