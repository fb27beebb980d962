"""Application configuration via pydantic-settings."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/wallet/vcs/watch/callback"


class Settings(BaseSettings):
    """Wallet Watcher API configuration.

    Loaded from environment variables with the ``WALLET_`` prefix.
    """

    model_config = {"env_prefix": "WALLET_"}

    # -- Storage -------------------------------------------------------------
    db_path: Path = Path("/var/lib/wallet-watcher-api/watchers.db")

    # -- Dhiway credential service -------------------------------------------
    dhiway_base_url: str = "https://wallet-api.dhiway.com"
    dhiway_api_key: str = ""
    dhiway_watch_path: str = "/api/v1/cred/watch"
    dhiway_timeout_s: float = 10.0

    # Public address of this service; the default callback URL handed to Dhiway
    public_base_url: str = "http://localhost:3018"

    # -- Auth ----------------------------------------------------------------
    bearer_tokens_file: Path | None = None
    bearer_tokens: str = ""  # comma-separated fallback

    # -- Reconciliation ------------------------------------------------------
    reconcile_interval_s: float = 3600.0  # <= 0 disables the trigger
    reconcile_chunk_size: int = 100
    reconcile_concurrency: int = 4

    # -- Callback relay ------------------------------------------------------
    callback_settle_delay_s: float = 7.0
    forward_timeout_s: float = 10.0
    event_retention_hours: int = 24 * 7
    event_max_entries: int = 10000

    # -- Misc ----------------------------------------------------------------
    log_level: str = "INFO"

    # -- Derived (computed at startup) ---------------------------------------
    _resolved_tokens: set[str] | None = None

    @property
    def callback_url(self) -> str:
        """Callback URL registered with Dhiway when the caller supplies none."""
        return self.public_base_url.rstrip("/") + CALLBACK_PATH

    def resolve_tokens(self) -> set[str]:
        """Load bearer tokens from file (preferred) or env fallback."""
        if self._resolved_tokens is not None:
            return self._resolved_tokens

        tokens: set[str] = set()

        # Primary: file-based
        if self.bearer_tokens_file is not None:
            try:
                text = self.bearer_tokens_file.read_text(encoding="utf-8")
                for line in text.splitlines():
                    stripped = line.strip()
                    if stripped and not stripped.startswith("#"):
                        tokens.add(stripped)
                if tokens:
                    logger.info(
                        "Loaded %d token(s) from %s",
                        len(tokens),
                        self.bearer_tokens_file,
                    )
                    self._resolved_tokens = tokens
                    return tokens
            except FileNotFoundError:
                logger.warning(
                    "Token file %s not found, falling back to env",
                    self.bearer_tokens_file,
                )
            except OSError:
                logger.exception("Failed to read token file %s", self.bearer_tokens_file)

        # Fallback: comma-separated env var
        if self.bearer_tokens:
            for t in self.bearer_tokens.split(","):
                stripped = t.strip()
                if stripped:
                    tokens.add(stripped)
            if tokens:
                logger.info("Loaded %d token(s) from WALLET_BEARER_TOKENS env", len(tokens))

        self._resolved_tokens = tokens
        return tokens

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("reconcile_chunk_size", "reconcile_concurrency")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v
