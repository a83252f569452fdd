from r2_upload_proxy.api.router import build_api_router

__all__ = ["build_api_router"]
