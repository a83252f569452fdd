"""
API router aggregator.
Owns the route table for the proxy; the upload path is its only route.
"""
from fastapi import APIRouter

from r2_upload_proxy.api.upload import ObjectStorage, create_upload_router


def build_api_router(storage: ObjectStorage) -> APIRouter:
    """Create the route table with the upload handler bound to `storage`."""
    api_router = APIRouter()
    api_router.include_router(create_upload_router(storage), tags=["upload"])
    return api_router
