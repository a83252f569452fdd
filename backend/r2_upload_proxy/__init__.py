"""
Local development proxy that forwards HTTP file uploads to Cloudflare R2.
"""
__version__ = "0.1.0"
