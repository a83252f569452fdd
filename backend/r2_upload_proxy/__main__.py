"""
Entry point: python -m r2_upload_proxy [flags]

Loads settings from the environment and flags, builds the R2 client and
serves the upload endpoint with uvicorn. Any configuration problem stops
the process before it binds a socket.

Usage:
    R2_ACCOUNT_ID=xxx R2_ACCESS_KEY_ID=xxx R2_ACCESS_KEY_SECRET=xxx R2_BUCKET=xxx \\
        python -m r2_upload_proxy --bind localhost:8789
"""
import logging
import sys
from typing import Optional, Sequence

import uvicorn

from r2_upload_proxy.config import load_settings
from r2_upload_proxy.errors import ConfigurationError
from r2_upload_proxy.main import create_app
from r2_upload_proxy.storage import R2Client
from r2_upload_proxy.utils.logging import configure_logging
from r2_upload_proxy.utils.metrics import start_metrics_exporter

logger = logging.getLogger("r2_upload_proxy")

SERVICE_NAME = "r2-upload-proxy"


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = load_settings(argv)
    configure_logging(SERVICE_NAME, settings.log_level)
    logger.info("Starting...")

    try:
        settings.validate_required()
        host, port = settings.bind_address()
        storage = R2Client(
            settings.r2_account_id,
            settings.r2_access_key_id,
            settings.r2_access_key_secret,
            settings.r2_bucket,
            endpoint=settings.r2_endpoint,
            region=settings.r2_region,
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if settings.metrics_port:
        start_metrics_exporter(settings.metrics_port)

    app = create_app(storage)

    logger.info(f"Listening on {host}:{port}")
    # log_config=None keeps the JSON handlers installed above
    uvicorn.run(app, host=host, port=port, log_config=None, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
