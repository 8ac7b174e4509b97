"""Pydantic schema for the unseenmail config file.

Default values here MUST match the constants in conventions.py.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import conventions


class AccountConfig(BaseModel):
    """One watched mailbox and where to announce its new mail."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    server: str = Field(min_length=1)
    port: int = Field(default=conventions.DEFAULT_IMAP_PORT, ge=1, le=65535)
    username: str
    password: str = Field(repr=False)
    ntfy_url: str
    ntfy_topic: str = Field(min_length=1)
    ntfy_clickable_url: str | None = None
    mailbox: str = conventions.DEFAULT_MAILBOX
    search_criteria: str = conventions.DEFAULT_SEARCH_CRITERIA

    @field_validator("ntfy_topic")
    @classmethod
    def _topic_is_path_segment(cls, v: str) -> str:
        if "/" in v or v.strip() != v:
            raise ValueError("ntfy_topic must be a single path segment")
        return v

    @field_validator("ntfy_url", "ntfy_clickable_url")
    @classmethod
    def _http_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("must be an http:// or https:// URL")
        return v


class WatcherSettings(BaseModel):
    """Timing knobs shared by every watcher (seconds)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    initial_backoff_seconds: float = Field(default=conventions.INITIAL_BACKOFF, gt=0)
    escalation_threshold_seconds: float = Field(
        default=conventions.ESCALATION_THRESHOLD, ge=0
    )
    idle_max_wait_seconds: float = Field(default=conventions.IDLE_MAX_WAIT, gt=0)
    command_timeout_seconds: float = Field(default=conventions.COMMAND_TIMEOUT, gt=0)


class UnseenMailConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    accounts: list[AccountConfig] = Field(min_length=1)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)

    @model_validator(mode="after")
    def _unique_names(self) -> UnseenMailConfig:
        seen: set[str] = set()
        for account in self.accounts:
            if account.name in seen:
                raise ValueError(f"duplicate account name: {account.name}")
            seen.add(account.name)
        return self
