"""
FastAPI application factory.

The app is assembled from an already-built storage client; there is no
module-level app or settings object. See `r2_upload_proxy.__main__` for
the startup routine that validates configuration and runs the server.
"""
from fastapi import FastAPI

from r2_upload_proxy import __version__
from r2_upload_proxy.api.router import build_api_router
from r2_upload_proxy.api.upload import ObjectStorage
from r2_upload_proxy.middleware.metrics_middleware import MetricsMiddleware


def create_app(storage: ObjectStorage) -> FastAPI:
    """
    Create the proxy application.

    Args:
        storage: Client used to store uploaded files (shared read-only)

    Returns:
        FastAPI app serving POST /upload
    """
    app = FastAPI(
        title="R2 Upload Proxy",
        description="Local development upload endpoint forwarding to Cloudflare R2",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(MetricsMiddleware)
    app.include_router(build_api_router(storage))

    return app
