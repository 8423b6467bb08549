"""
Backup Fetcher

Materializes a remote backup file in the local cache exactly once. If the
cache file exists it is returned without any network call; otherwise the file
is downloaded with a SharedKey-signed GET and streamed to disk.

Downloads are written to ``<dest>.partial`` and renamed onto the destination
only after the body has been fully received, so an interrupted transfer never
leaves a file that the existence check would trust.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

import httpx

from ..config import DownloadConfig
from ..exceptions import DownloadCancelled, DownloadFailed, MissingCredential
from ..models.entities import BackupSource, DownloadProgress, LocalCacheEntry
from ..utils.progress import DownloadProgressTracker
from .signer import RequestSigner, format_rfc1123

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DownloadProgress], None]


class BackupFetcher:
    """
    Downloads backup artifacts from an Azure File Share into a local cache.

    Example:
        ```python
        fetcher = BackupFetcher(DownloadConfig(local_cache_dir="./sqldata"))
        source = BackupSource.from_url(url, signing_key=key)

        entry = await fetcher.ensure_local(
            source,
            on_progress=LoggingProgressReporter()
        )
        if not entry.exists:
            logger.error(entry.error_message)
        ```
    """

    def __init__(
        self,
        config: Optional[DownloadConfig] = None,
        signer: Optional[RequestSigner] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize BackupFetcher.

        Args:
            config: Download configuration (uses defaults if None)
            signer: Request signer (built from the config's protocol version if None)
            client_factory: Returns a fresh httpx.AsyncClient per download
            clock: Returns the current UTC time used for x-ms-date
        """
        self._config = config or DownloadConfig()
        self._signer = signer or RequestSigner(self._config.protocol_version)
        self._client_factory = client_factory or self._default_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._config.request_timeout)

    def cache_path_for(self, source: BackupSource) -> Path:
        return self._config.cache_path_for(source.file_name)

    async def ensure_local(
        self,
        source: BackupSource,
        dest_path: Optional[Union[str, Path]] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> LocalCacheEntry:
        """
        Make sure the backup file is present locally.

        Args:
            source: Remote file location and signing key
            dest_path: Cache file path (defaults to ``<cache dir>/<file name>``)
            on_progress: Called with each throttled progress observation
            cancel_event: When set, the transfer is aborted between chunks

        Returns:
            LocalCacheEntry; ``exists`` is False when the server answered
            with a non-success status

        Raises:
            MissingCredential: The file must be downloaded but no key is set
            InvalidCredential: The key is not valid base64
            DownloadFailed: Transport or filesystem error while streaming
            DownloadCancelled: ``cancel_event`` was set during the transfer
        """
        dest = Path(dest_path) if dest_path is not None else self.cache_path_for(source)
        file_name = source.file_name

        if dest.exists():
            logger.info(f"{file_name} already exists locally at {dest}")
            return LocalCacheEntry.from_path(dest)

        if not source.has_signing_key:
            raise MissingCredential(
                "Storage account key is required to access the Azure File Share",
                source_url=source.source_url,
                local_path=str(dest)
            )

        headers = self._signer.signed_headers(source, format_rfc1123(self._clock()))

        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + self._config.partial_suffix)
        tracker = DownloadProgressTracker()

        try:
            _check_cancelled(cancel_event, source, dest, tracker)
            logger.info(f"Downloading {file_name} from Azure File Share...")

            async with self._client_factory() as client:
                async with client.stream("GET", source.source_url, headers=headers) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        logger.error(
                            f"Failed to download {file_name}: {response.status_code} - {body}"
                        )
                        return LocalCacheEntry.failed(
                            dest, f"HTTP {response.status_code} {response.reason_phrase}"
                        )

                    tracker = DownloadProgressTracker(_content_length(response))
                    if tracker.can_report:
                        logger.info(
                            f"Total file size: {tracker.total_bytes / (1024.0 * 1024.0):.2f} MB"
                        )

                    loop = asyncio.get_running_loop()
                    f = await loop.run_in_executor(None, open, partial, "wb")
                    try:
                        # raw body: the cache holds the stored bytes even when a
                        # Content-Encoding is declared
                        async for chunk in response.aiter_raw(self._config.chunk_size):
                            _check_cancelled(cancel_event, source, dest, tracker)
                            await loop.run_in_executor(None, _write_chunk, f, chunk)
                            observation = tracker.advance(len(chunk))
                            if observation is not None and on_progress is not None:
                                on_progress(observation)
                    finally:
                        await loop.run_in_executor(None, f.close)

            if tracker.can_report and tracker.bytes_transferred != tracker.total_bytes:
                raise DownloadFailed(
                    "Response body ended before the declared Content-Length",
                    source_url=source.source_url,
                    local_path=str(dest),
                    bytes_transferred=tracker.bytes_transferred,
                    context={"expected_bytes": tracker.total_bytes}
                )

            os.replace(partial, dest)

        except DownloadCancelled:
            _discard(partial)
            logger.warning(
                f"Download of {file_name} cancelled after {tracker.bytes_transferred} bytes"
            )
            raise
        except asyncio.CancelledError:
            _discard(partial)
            logger.warning(f"Download of {file_name} cancelled")
            raise
        except DownloadFailed as e:
            _discard(partial)
            logger.error(f"Error downloading {file_name}: {e.message}")
            raise
        except (httpx.HTTPError, OSError) as e:
            _discard(partial)
            logger.error(f"Error downloading {file_name}: {e}")
            raise DownloadFailed(
                f"Error downloading {file_name}: {e}",
                source_url=source.source_url,
                local_path=str(dest),
                bytes_transferred=tracker.bytes_transferred
            ) from e

        entry = LocalCacheEntry.from_path(dest, downloaded=True)
        logger.info(
            f"Downloaded {file_name} successfully to {dest} ({entry.size_mb:.2f} MB)"
        )
        return entry


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid Content-Length header: {value!r}")
        return None


def _write_chunk(f, chunk: bytes) -> None:
    f.write(chunk)


def _check_cancelled(
    cancel_event: Optional[asyncio.Event],
    source: BackupSource,
    dest: Path,
    tracker: DownloadProgressTracker
) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise DownloadCancelled(
            "Download cancelled",
            source_url=source.source_url,
            local_path=str(dest),
            bytes_transferred=tracker.bytes_transferred
        )


def _discard(partial: Path) -> None:
    try:
        partial.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial download {partial}: {e}")
