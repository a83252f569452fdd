"""
Storage module for S3-compatible object storage (Cloudflare R2).

The proxy receives file bytes over HTTP and writes them to R2 with a
single put_object call per upload.
"""
from r2_upload_proxy.storage.r2_client import CancellableBody, R2Client, resolve_endpoint

__all__ = ["CancellableBody", "R2Client", "resolve_endpoint"]
