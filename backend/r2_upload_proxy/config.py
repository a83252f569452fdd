"""
Application configuration using Pydantic Settings.

Values come from environment variables (or a local .env file) and can be
overridden by command-line flags. The resulting Settings object is built
once at startup and handed to the code that needs it; nothing reads a
process-wide settings global.
"""
import argparse
from typing import Optional, Sequence, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict

from r2_upload_proxy.errors import ConfigurationError

DEFAULT_BIND = "localhost:8789"


class Settings(BaseSettings):
    """Proxy settings loaded from environment variables."""

    # HTTP listener
    bind: str = DEFAULT_BIND

    # Cloudflare R2 / S3-compatible storage
    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_access_key_secret: Optional[str] = None
    r2_bucket: Optional[str] = None
    r2_endpoint: Optional[str] = None  # overrides https://<account_id>.r2.cloudflarestorage.com
    r2_region: str = "auto"  # R2 uses "auto" for region

    # Observability
    log_level: str = "INFO"
    metrics_port: int = 0  # 0 disables the Prometheus exporter

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    def validate_required(self) -> None:
        """
        Make sure every storage credential is present and non-blank.

        Raises:
            ConfigurationError: listing every missing setting
        """
        required = {
            "R2_ACCOUNT_ID": self.r2_account_id,
            "R2_ACCESS_KEY_ID": self.r2_access_key_id,
            "R2_ACCESS_KEY_SECRET": self.r2_access_key_secret,
            "R2_BUCKET": self.r2_bucket,
        }
        missing = [name for name, value in required.items() if not value or not value.strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )
        self.bind_address()

    def bind_address(self) -> Tuple[str, int]:
        """Split `bind` into (host, port)."""
        return parse_bind(self.bind)


def parse_bind(bind: str) -> Tuple[str, int]:
    """
    Parse a `host:port` bind address.

    An empty host (":8789") means all interfaces.
    """
    host, sep, port = bind.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"Invalid bind address: {bind!r} (expected host:port)")
    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ConfigurationError(f"Invalid bind port: {port_number}")
    # [::1]:8789 style IPv6 literals
    host = host.strip("[]") or "0.0.0.0"
    return host, port_number


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="r2-upload-proxy",
        description="Local development server that forwards uploads to Cloudflare R2",
    )
    parser.add_argument("--bind", help=f"Bind address (default: {DEFAULT_BIND})")
    parser.add_argument("--r2-account-id", help="r2 account id")
    parser.add_argument("--r2-access-key-id", help="r2 access key id")
    parser.add_argument("--r2-access-key-secret", help="r2 access key secret")
    parser.add_argument("--r2-bucket", help="r2 bucket")
    parser.add_argument("--r2-endpoint", help="S3-compatible endpoint URL (default: derived from account id)")
    parser.add_argument("--r2-region", help="r2 region (default: auto)")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--metrics-port", type=int, help="Port for the Prometheus exporter (0 disables)")
    return parser


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """
    Build Settings from the environment, then apply command-line flags.

    Flags that were not given on the command line leave the environment
    (or default) value untouched.
    """
    args = build_arg_parser().parse_args(argv)
    overrides = {name: value for name, value in vars(args).items() if value is not None}
    return Settings(**overrides)
