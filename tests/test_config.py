from pathlib import Path

import yaml

from welcomebot.config import (
    Config,
    DiscordConfig,
    apply_env_overrides,
    collect_config_findings,
    load_config,
    summarize_findings,
)


def _by_check(findings: list[dict[str, str]]) -> dict[str, dict[str, str]]:
    return {f["check"]: f for f in findings}


def test_load_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml", environ={})
    assert cfg.onboarding.timeouts.consent == 120
    assert cfg.onboarding.timeouts.field == 60
    assert cfg.onboarding.timeouts.grant_reaction == 60
    assert cfg.onboarding.grant_emoji == "✅"
    assert cfg.onboarding.block_grant_on_submit_failure is False
    assert cfg.onboarding.restore_starter_on_failure is False
    assert cfg.submission.url == ""


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    data = {
        "guild": {"guild_id": "42", "starter_role_id": "7"},
        "onboarding": {"timeouts": {"field": 30}, "restore_starter_on_failure": True},
    }
    config_path.write_text(yaml.safe_dump(data), encoding="utf-8")

    cfg = load_config(config_path, environ={})
    assert cfg.guild.guild_id == "42"
    assert cfg.guild.starter_role_id == "7"
    assert cfg.onboarding.timeouts.field == 30
    assert cfg.onboarding.timeouts.consent == 120
    assert cfg.onboarding.restore_starter_on_failure is True


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({"submission": {"url": "https://file.test"}}), encoding="utf-8")

    cfg = load_config(config_path, environ={
        "WEBHOOK_URL": "https://env.test/hook",
        "BOT_TOKEN": "secret",
        "STARTER_ROLE": "111",
        "ONBOARDING_ROLE_ID": "222",
        "RESUME_URL": "https://env.test/resume",
        "GUILD_ID": "  ",
    })
    assert cfg.submission.url == "https://env.test/hook"
    assert cfg.discord.token == "secret"
    assert cfg.guild.starter_role_id == "111"
    assert cfg.guild.onboarded_role_id == "222"
    assert cfg.resume.sink.url == "https://env.test/resume"
    assert cfg.guild.guild_id == ""


def test_findings_flag_missing_essentials() -> None:
    findings = _by_check(collect_config_findings(Config()))
    assert findings["discord_token"]["level"] == "FAIL"
    assert findings["submission_url"]["level"] == "FAIL"
    assert findings["onboarded_role"]["level"] == "FAIL"
    assert findings["operator_channel"]["level"] == "WARN"
    assert findings["resume_url"]["level"] == "WARN"


def test_findings_pass_for_complete_config() -> None:
    cfg = apply_env_overrides(Config(), {
        "BOT_TOKEN": "t",
        "WEBHOOK_URL": "https://hook.test",
        "GUILD_ID": "1",
        "WELCOME_CHANNEL_ID": "2",
        "OPERATOR_CHANNEL_ID": "3",
        "STARTER_ROLE": "4",
        "ONBOARDING_ROLE_ID": "5",
        "RESUME_URL": "https://resume.test",
    })
    summary = summarize_findings(collect_config_findings(cfg))
    assert summary["FAIL"] == 0
    assert summary["WARN"] == 0


def test_discord_section_has_only_read_settings() -> None:
    assert set(DiscordConfig.model_fields) == {"token", "allow_from"}
