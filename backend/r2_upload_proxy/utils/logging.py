"""
Structured JSON logging for the upload proxy.

Every record carries:
- timestamp (ISO8601)
- level
- service
- event (for the upload event helpers below)

Optional fields (included when applicable):
- key
- size_bytes
- status_code
- duration_ms
- error

Usage:
    from r2_upload_proxy.utils.logging import configure_logging, log_upload_stored

    configure_logging('r2-upload-proxy', 'INFO')
    log_upload_stored(logger, key='a.png', size_bytes=4, duration_ms=12.5)
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    key: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        key: Optional object key
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if key:
        extra["key"] = key
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


def log_upload_received(logger: logging.Logger, key: str, size_bytes: int, **kwargs):
    """Log that a request body was read and is about to be stored."""
    extra = _build_log_extra(event="upload_received", key=key, size_bytes=size_bytes, **kwargs)
    logger.info(f"Uploading {key}", extra=extra)


def log_upload_stored(
    logger: logging.Logger,
    key: str,
    size_bytes: int,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log a successful upload.

    Args:
        logger: Logger instance
        key: Object key (required)
        size_bytes: Stored object size (required)
        duration_ms: Optional storage call duration in milliseconds
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_stored",
        key=key,
        duration_ms=duration_ms,
        size_bytes=size_bytes,
        **kwargs
    )
    logger.info(f"Uploaded {key}", extra=extra)


def log_upload_rejected(
    logger: logging.Logger,
    status_code: int,
    reason: str,
    key: Optional[str] = None,
    **kwargs
):
    """
    Log a request rejected because of a caller mistake (4xx).

    Args:
        logger: Logger instance
        status_code: HTTP status returned (required)
        reason: Human readable reason (required)
        key: Optional object key, when it was already extracted
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_rejected",
        key=key,
        status_code=status_code,
        reason=reason,
        **kwargs
    )
    logger.warning(reason, extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    error: str,
    key: Optional[str] = None,
    stage: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log a server-side upload failure (body read or storage).

    Args:
        logger: Logger instance
        error: Error message (required)
        key: Optional object key
        stage: Where it failed ("read" or "store")
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_failed",
        key=key,
        duration_ms=duration_ms,
        error=str(error),
        **kwargs
    )
    if stage:
        extra["stage"] = stage

    message = f"Upload failed: {key or '<unknown>'} - {error}"

    logger.error(message, extra=extra)


def log_upload_canceled(logger: logging.Logger, key: str, stage: str, **kwargs):
    """Log an upload abandoned because the client disconnected."""
    extra = _build_log_extra(event="upload_canceled", key=key, stage=stage, **kwargs)
    logger.warning(f"Client disconnected, upload of {key} canceled", extra=extra)


# Convenience alias
def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
