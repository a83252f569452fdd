"""
Upload endpoint.

POST /upload with an `x-file-name` header and the raw file as the request
body. The body is read fully into memory, then written to object storage
under that key in a single put.

Flow:
1. Reject anything but POST (405)
2. Require a non-empty x-file-name header (400)
3. Require a request body (400)
4. Read the whole body (500 on transport failure)
5. Store it (500 on backend failure)
6. 201 Created, empty body

Every failure stays inside the request: nothing here can take the server
down. If the client disconnects, the in-flight read or store is abandoned
and no meaningful response can be delivered.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol

from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse, Response
from starlette.requests import ClientDisconnect

from r2_upload_proxy.errors import CanceledError, StorageError
from r2_upload_proxy.utils.logging import (
    log_upload_canceled,
    log_upload_failed,
    log_upload_received,
    log_upload_rejected,
    log_upload_stored,
)
from r2_upload_proxy.utils.metrics import (
    upload_bytes_total,
    upload_store_duration_seconds,
    uploads_total,
)

logger = logging.getLogger(__name__)

FILE_NAME_HEADER = "x-file-name"

# nginx's "client closed request"; never reaches a disconnected client
STATUS_CLIENT_CLOSED_REQUEST = 499

UPLOAD_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class ObjectStorage(Protocol):
    """Anything that can store bytes under a key (R2Client in production)."""

    async def store(self, key: str, data: bytes) -> None:
        ...


def _has_body(request: Request) -> bool:
    # A request with neither header carries no body at all
    headers = request.headers
    return "content-length" in headers or "transfer-encoding" in headers


async def _read_body(request: Request) -> bytes:
    """Read the whole request body into memory."""
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
    return bytes(body)


async def _wait_for_disconnect(receive: Callable[[], Awaitable[dict]]) -> None:
    """Return once the ASGI server reports the client has gone away."""
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return


async def _store_until_disconnect(
    storage: ObjectStorage,
    request: Request,
    key: str,
    data: bytes,
) -> None:
    """
    Run the storage call, cancelling it if the client disconnects first.

    Raises:
        StorageError: if the backend rejects the write
        CanceledError: if the client disconnected before the write finished
    """
    store_task = asyncio.ensure_future(storage.store(key, data))
    disconnect_task = asyncio.ensure_future(_wait_for_disconnect(request.receive))
    try:
        done, _ = await asyncio.wait(
            {store_task, disconnect_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if store_task not in done and disconnect_task.exception() is not None:
            # Connection state unknown; let the store decide the outcome
            logger.warning(f"Stopped watching connection for {key}: {disconnect_task.exception()}")
            await asyncio.wait({store_task})
    finally:
        # Also covers cancellation of the request task itself
        for task in (store_task, disconnect_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(store_task, disconnect_task, return_exceptions=True)

    if store_task.cancelled():
        raise CanceledError(f"Client disconnected while storing {key}")
    # Re-raises StorageError (or anything unexpected) from the store call
    store_task.result()


def create_upload_router(storage: ObjectStorage) -> APIRouter:
    """
    Build the router serving /upload against the given storage client.

    The storage client is passed in explicitly; it is immutable and shared
    read-only by all concurrent requests.
    """
    router = APIRouter()

    async def upload(request: Request) -> Response:
        """
        Store the request body under the key given in x-file-name.

        Returns 201 with an empty body on success, plain text errors
        otherwise.
        """
        if request.method != "POST":
            reason = f"Method not allowed: {request.method}"
            log_upload_rejected(logger, status.HTTP_405_METHOD_NOT_ALLOWED, reason)
            uploads_total.labels(status="rejected").inc()
            return PlainTextResponse(
                "Method not allowed",
                status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
                headers={"Allow": "POST"},
            )

        key = request.headers.get(FILE_NAME_HEADER, "")
        if not key:
            log_upload_rejected(logger, status.HTTP_400_BAD_REQUEST, "Missing x-file-name header")
            uploads_total.labels(status="rejected").inc()
            return PlainTextResponse(
                "Missing x-file-name header",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        if not _has_body(request):
            log_upload_rejected(logger, status.HTTP_400_BAD_REQUEST, "Missing request body", key=key)
            uploads_total.labels(status="rejected").inc()
            return PlainTextResponse(
                "Missing request body",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            data = await _read_body(request)
        except ClientDisconnect:
            log_upload_canceled(logger, key=key, stage="read")
            uploads_total.labels(status="canceled").inc()
            return Response(status_code=STATUS_CLIENT_CLOSED_REQUEST)
        except Exception as e:
            log_upload_failed(logger, error=str(e), key=key, stage="read")
            uploads_total.labels(status="read_failed").inc()
            return PlainTextResponse(
                f"Error reading request body: {e}",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        log_upload_received(logger, key=key, size_bytes=len(data))
        start_time = time.perf_counter()
        try:
            await _store_until_disconnect(storage, request, key, data)
        except CanceledError:
            log_upload_canceled(logger, key=key, stage="store")
            uploads_total.labels(status="canceled").inc()
            return Response(status_code=STATUS_CLIENT_CLOSED_REQUEST)
        except StorageError as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            log_upload_failed(logger, error=str(e), key=key, stage="store", duration_ms=duration_ms)
            uploads_total.labels(status="store_failed").inc()
            return PlainTextResponse(
                f"Error uploading file: {e}",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        duration = time.perf_counter() - start_time
        upload_store_duration_seconds.observe(duration)
        upload_bytes_total.inc(len(data))
        uploads_total.labels(status="stored").inc()
        log_upload_stored(logger, key=key, size_bytes=len(data), duration_ms=duration * 1000)

        return Response(status_code=status.HTTP_201_CREATED)

    router.add_api_route(
        "/upload",
        upload,
        methods=UPLOAD_METHODS,
        include_in_schema=False,
    )
    return router
