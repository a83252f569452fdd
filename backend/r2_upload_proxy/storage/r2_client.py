"""
Cloudflare R2 / S3-compatible storage client.

Uses boto3 with the S3-compatible API. The client is built once at startup
from explicit credentials and is then shared read-only by every request;
boto3 clients are thread-safe, so concurrent uploads need no locking.

There are no retries: a failed put is reported to the caller as final.
"""
import asyncio
import io
import logging
import re
import threading
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from r2_upload_proxy.errors import CanceledError, ConfigurationError, StorageError

logger = logging.getLogger(__name__)

R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"

# The account id becomes the first label of the endpoint hostname
_DNS_LABEL = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)


def resolve_endpoint(account_id: str, endpoint: Optional[str] = None) -> str:
    """
    Work out the S3 endpoint URL for an account.

    Args:
        account_id: Cloudflare account id
        endpoint: Explicit endpoint override (e.g. a local MinIO)

    Returns:
        Endpoint URL

    Raises:
        ConfigurationError: if no usable endpoint can be built
    """
    if endpoint:
        parsed = urlparse(endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"Invalid storage endpoint URL: {endpoint!r}")
        return endpoint.rstrip("/")

    if not _DNS_LABEL.match(account_id):
        raise ConfigurationError(
            f"Cannot resolve R2 endpoint from account id {account_id!r}"
        )
    return R2_ENDPOINT_TEMPLATE.format(account_id=account_id.lower())


class CancellableBody(io.BytesIO):
    """
    Request body that stops the upload once `cancelled` is set.

    botocore streams the body in blocks; raising from read() aborts the
    HTTP request before the object is complete, so R2 never commits it.
    """

    def __init__(self, data: bytes, cancelled: threading.Event):
        super().__init__(data)
        self._cancelled = cancelled

    def read(self, size: Optional[int] = -1) -> bytes:
        if self._cancelled.is_set():
            raise CanceledError("Upload canceled while sending body")
        return super().read(size)


class R2Client:
    """
    S3-compatible client bound to a single bucket.

    Exposes exactly one operation: store bytes under a key.
    """

    def __init__(
        self,
        account_id: Optional[str],
        access_key_id: Optional[str],
        access_key_secret: Optional[str],
        bucket: Optional[str],
        endpoint: Optional[str] = None,
        region: str = "auto",
    ):
        """
        Initialize the boto3 S3 client.

        Raises:
            ConfigurationError: if a credential is missing or the endpoint
                cannot be resolved
        """
        credentials = {
            "account id": account_id,
            "access key id": access_key_id,
            "access key secret": access_key_secret,
            "bucket": bucket,
        }
        missing = [name for name, value in credentials.items() if not value or not value.strip()]
        if missing:
            raise ConfigurationError(f"Missing R2 {', '.join(missing)}")

        self._bucket = bucket.strip()
        self._endpoint = resolve_endpoint(account_id.strip(), endpoint)

        try:
            # signature_version='s3v4' and path-style addressing for R2 compatibility;
            # checksums only when an operation requires them (R2 rejects some defaults)
            self._client = boto3.client(
                "s3",
                endpoint_url=self._endpoint,
                aws_access_key_id=access_key_id.strip(),
                aws_secret_access_key=access_key_secret.strip(),
                region_name=region,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                    retries={"mode": "standard", "total_max_attempts": 1},
                    request_checksum_calculation="when_required",
                    response_checksum_validation="when_required",
                ),
            )
        except (BotoCoreError, ValueError) as e:
            raise ConfigurationError(f"Failed to initialize R2 client: {e}") from e

        logger.info(f"R2 client initialized for bucket: {self._bucket} ({self._endpoint})")

    @property
    def bucket(self) -> str:
        """Get configured bucket name."""
        return self._bucket

    @property
    def endpoint(self) -> str:
        """Get resolved S3 endpoint URL."""
        return self._endpoint

    def _put_object(self, key: str, data: bytes, cancelled: threading.Event) -> None:
        if cancelled.is_set():
            raise CanceledError(f"Upload of {key} canceled before sending")
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=CancellableBody(data, cancelled),
                ContentLength=len(data),
            )
        except (ClientError, BotoCoreError) as e:
            if cancelled.is_set():
                raise CanceledError(f"Upload of {key} canceled") from e
            raise StorageError(e, key=key) from e

    async def store(self, key: str, data: bytes) -> None:
        """
        Create or overwrite the object at `key` with `data`.

        The blocking boto3 call runs in a worker thread. Cancelling the
        awaiting task raises asyncio.CancelledError here immediately and
        flags the body so the worker thread aborts the put at its next
        read instead of finishing the write in the background.

        Args:
            key: Object key in the bucket
            data: Full object contents

        Raises:
            StorageError: if the backend fails or rejects the write
        """
        cancelled = threading.Event()
        try:
            await asyncio.to_thread(self._put_object, key, data, cancelled)
        except asyncio.CancelledError:
            cancelled.set()
            logger.warning(f"Upload of {key} to R2 canceled")
            raise
        logger.debug(f"Stored {key} ({len(data)} bytes) in bucket {self._bucket}")
