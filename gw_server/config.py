"""
Gateway configuration.

All settings come from environment variables. Nothing is validated at
startup: a missing credential only fails the call path that needs it.
The configuration object is created once per process and injected into
handlers, so tests can substitute values without touching the environment.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PROJECT_ROOT = Path.cwd()


def _optional(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


@dataclass
class GatewayConfig:
    """
    Runtime settings for the gateway.

    `telegram_bot_token` is the only field changed after startup: a call to
    POST /telegram/register replaces it.
    """

    api_key: str | None = None
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    telegram_webhook_secret: str | None = None
    telegram_verification: str | None = None
    gh_webhook_secret: str | None = None
    gh_owner: str | None = None
    gh_repo: str | None = None
    gh_token: str | None = None
    anthropic_api_key: str | None = None
    model: str | None = None
    openai_api_key: str | None = None
    project_root: Path = DEFAULT_PROJECT_ROOT
    db_path: str | None = None
    crons_file: Path | None = None
    triggers_file: Path | None = None
    job_summary_prompt: Path | None = None
    chat_prompt: Path | None = None

    def __post_init__(self) -> None:
        os_dir = self.project_root / "operating_system"
        if self.crons_file is None:
            self.crons_file = os_dir / "CRONS.json"
        if self.triggers_file is None:
            self.triggers_file = os_dir / "TRIGGERS.json"
        if self.job_summary_prompt is None:
            self.job_summary_prompt = os_dir / "JOB_SUMMARY.md"
        if self.chat_prompt is None:
            self.chat_prompt = os_dir / "CHATBOT.md"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "GatewayConfig":
        """
        Build the configuration from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Environment variables:
        - API_KEY: Static key required by first-party routes (x-api-key header)
        - TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID, TELEGRAM_WEBHOOK_SECRET,
          TELEGRAM_VERIFICATION: Chat provider settings
        - GH_WEBHOOK_SECRET, GH_OWNER, GH_REPO, GH_TOKEN: CI settings
        - ANTHROPIC_API_KEY, EVENT_HANDLER_MODEL: Completion service
        - OPENAI_API_KEY: Enables voice transcription
        - GW_PROJECT_ROOT, GW_DB_PATH, GW_CRONS_FILE, GW_TRIGGERS_FILE,
          GW_JOB_SUMMARY_PROMPT, GW_CHAT_PROMPT: Paths
        """
        if env is None:
            env = os.environ

        def path(name: str) -> Path | None:
            value = _optional(env, name)
            return Path(value) if value else None

        return cls(
            api_key=_optional(env, "API_KEY"),
            telegram_bot_token=_optional(env, "TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=_optional(env, "TELEGRAM_CHAT_ID"),
            telegram_webhook_secret=_optional(env, "TELEGRAM_WEBHOOK_SECRET"),
            telegram_verification=_optional(env, "TELEGRAM_VERIFICATION"),
            gh_webhook_secret=_optional(env, "GH_WEBHOOK_SECRET"),
            gh_owner=_optional(env, "GH_OWNER"),
            gh_repo=_optional(env, "GH_REPO"),
            gh_token=_optional(env, "GH_TOKEN"),
            anthropic_api_key=_optional(env, "ANTHROPIC_API_KEY"),
            model=_optional(env, "EVENT_HANDLER_MODEL"),
            openai_api_key=_optional(env, "OPENAI_API_KEY"),
            project_root=path("GW_PROJECT_ROOT") or DEFAULT_PROJECT_ROOT,
            db_path=_optional(env, "GW_DB_PATH"),
            crons_file=path("GW_CRONS_FILE"),
            triggers_file=path("GW_TRIGGERS_FILE"),
            job_summary_prompt=path("GW_JOB_SUMMARY_PROMPT"),
            chat_prompt=path("GW_CHAT_PROMPT"),
        )

    @property
    def github_base_url(self) -> str:
        """Base URL for file links in job summaries, or "" if the repo is unknown."""
        if self.gh_owner and self.gh_repo:
            return f"https://github.com/{self.gh_owner}/{self.gh_repo}/blob/main"
        return ""
