"""Configuration schema and loader."""

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field


class DiscordConfig(BaseModel):
    token: str = ""
    allow_from: list[str] = Field(default_factory=list)


class GuildConfig(BaseModel):
    guild_id: str = ""
    welcome_channel_id: str = ""       # public channel for the access confirmation
    operator_channel_id: str = ""      # optional; operator-facing failure notices
    starter_role_id: str = ""
    onboarded_role_id: str = ""


class SinkConfig(BaseModel):
    url: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)


class TimeoutsConfig(BaseModel):
    consent: float = Field(default=120.0, gt=0)
    field: float = Field(default=60.0, gt=0)
    grant_reaction: float = Field(default=60.0, gt=0)
    resume_upload: float = Field(default=600.0, gt=0)


class OnboardingConfig(BaseModel):
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    grant_emoji: str = "✅"
    assign_starter_on_join: bool = True
    block_grant_on_submit_failure: bool = False
    restore_starter_on_failure: bool = False


class ResumeConfig(BaseModel):
    enabled: bool = True
    sink: SinkConfig = Field(default_factory=SinkConfig)
    allowed_content_types: list[str] = Field(
        default_factory=lambda: [
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ]
    )


class Config(BaseModel):
    """Root configuration."""
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    guild: GuildConfig = Field(default_factory=GuildConfig)
    submission: SinkConfig = Field(default_factory=SinkConfig)
    onboarding: OnboardingConfig = Field(default_factory=OnboardingConfig)
    resume: ResumeConfig = Field(default_factory=ResumeConfig)
    log_level: str = "INFO"
    log_file: str = ""


# Environment variable -> dotted config path
_ENV_OVERRIDES: dict[str, str] = {
    "BOT_TOKEN": "discord.token",
    "WEBHOOK_URL": "submission.url",
    "GUILD_ID": "guild.guild_id",
    "WELCOME_CHANNEL_ID": "guild.welcome_channel_id",
    "OPERATOR_CHANNEL_ID": "guild.operator_channel_id",
    "STARTER_ROLE": "guild.starter_role_id",
    "ONBOARDING_ROLE_ID": "guild.onboarded_role_id",
    "RESUME_URL": "resume.sink.url",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
}


def apply_env_overrides(config: Config, environ: dict[str, str] | None = None) -> Config:
    """Overlay non-empty environment variables onto a loaded config (mutates in place)."""
    env = os.environ if environ is None else environ
    for var, dotted in _ENV_OVERRIDES.items():
        value = (env.get(var) or "").strip()
        if not value:
            continue
        *parents, attr = dotted.split(".")
        target: Any = config
        for part in parents:
            target = getattr(target, part)
        setattr(target, attr, value)
        logger.debug(f"Config: {dotted} set from ${var}")
    return config


def load_config(path: str | Path = "config.yaml", environ: dict[str, str] | None = None) -> Config:
    """Load config from YAML file, then apply environment overrides."""
    p = Path(path).expanduser()
    if p.exists():
        with open(p.resolve()) as f:
            data = yaml.safe_load(f) or {}
        config = Config(**data)
    else:
        logger.debug(f"Config file {p} not found, using defaults")
        config = Config()
    return apply_env_overrides(config, environ)


def collect_config_findings(config: Config) -> list[dict[str, str]]:
    """Return PASS/WARN/FAIL findings for values the onboarding flow depends on."""
    findings: list[dict[str, str]] = []

    def _check(check: str, ok: bool, fail_level: str, good: str, bad: str) -> None:
        findings.append({
            "level": "PASS" if ok else fail_level,
            "check": check,
            "message": good if ok else bad,
        })

    _check("discord_token", bool(config.discord.token), "FAIL",
           "Discord bot token configured.", "No Discord bot token configured (BOT_TOKEN).")
    _check("submission_url", bool(config.submission.url), "FAIL",
           "Submission webhook configured.", "No submission webhook URL configured (WEBHOOK_URL).")
    _check("guild_id", bool(config.guild.guild_id), "FAIL",
           "Guild id configured.", "No guild id configured (GUILD_ID).")
    _check("welcome_channel", bool(config.guild.welcome_channel_id), "FAIL",
           "Welcome channel configured.", "No welcome channel configured (WELCOME_CHANNEL_ID).")
    _check("starter_role", bool(config.guild.starter_role_id), "FAIL",
           "Starter role configured.", "No starter role configured (STARTER_ROLE).")
    _check("onboarded_role", bool(config.guild.onboarded_role_id), "FAIL",
           "Onboarded role configured.", "No onboarded role configured (ONBOARDING_ROLE_ID).")
    _check("operator_channel", bool(config.guild.operator_channel_id), "WARN",
           "Operator channel configured.", "No operator channel; failures are only logged.")
    if config.resume.enabled:
        _check("resume_url", bool(config.resume.sink.url), "WARN",
               "Resume webhook configured.", "Resume intake enabled without a webhook URL (RESUME_URL).")
    if not config.discord.allow_from:
        findings.append({
            "level": "PASS",
            "check": "allow_from",
            "message": "Open access (allow_from is empty).",
        })
    return findings


def summarize_findings(findings: list[dict[str, str]]) -> dict[str, int]:
    return {
        level: sum(1 for finding in findings if finding["level"] == level)
        for level in ("PASS", "WARN", "FAIL")
    }
