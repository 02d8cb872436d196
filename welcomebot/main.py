"""welcomebot - Entry point. Starts the Discord channel and onboarding service."""

import asyncio
import signal
import sys
from pathlib import Path

from loguru import logger

from welcomebot.utils.logger import setup_logging


class WelcomeBot:
    """Main application: wires bus, Discord channel and onboarding service."""

    def __init__(self, config_path: str = "config.yaml"):
        from welcomebot.bus.queue import MessageBus
        from welcomebot.channels.discord import DiscordChannel
        from welcomebot.config import load_config
        from welcomebot.onboarding.service import OnboardingService

        self.config = load_config(config_path)
        self.bus = MessageBus()
        self.channel = DiscordChannel(self.config.discord, self.bus)
        self.service = OnboardingService(self.config, self.channel, self.bus)
        self.channel.set_command_handler(self.service.handle_command)
        self.channel.set_join_handler(self.service.handle_member_join)
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        logger.info("welcomebot starting...")
        _log_findings(self.config)

        self._tasks.append(asyncio.create_task(self._start_channel()))
        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        logger.info("welcomebot stopping...")
        await self.service.stop()
        self.bus.cancel_all()
        try:
            await self.channel.stop()
        except Exception as e:
            logger.error(f"Error stopping {self.channel.name}: {e}")
        for task in self._tasks:
            task.cancel()
        logger.info("welcomebot stopped")

    async def _start_channel(self) -> None:
        try:
            await self.channel.start()
        except Exception as e:
            logger.error(f"Failed to start {self.channel.name}: {e}")


def _log_findings(config) -> int:
    """Log config findings; return the number of FAIL findings."""
    from welcomebot.config import collect_config_findings, summarize_findings

    findings = collect_config_findings(config)
    summary = summarize_findings(findings)
    summary_line = f"Config check: PASS={summary['PASS']} WARN={summary['WARN']} FAIL={summary['FAIL']}"
    if summary["FAIL"] > 0:
        logger.error(summary_line)
    elif summary["WARN"] > 0:
        logger.warning(summary_line)
    else:
        logger.info(summary_line)
    for finding in findings:
        if finding["level"] == "PASS":
            continue
        line = f"[config:{finding['check']}] {finding['message']}"
        if finding["level"] == "FAIL":
            logger.error(line)
        else:
            logger.warning(line)
    return summary["FAIL"]


def _print_main_usage() -> None:
    print("welcomebot commands:")
    print("  welcomebot run [config]     # run the bot in the foreground")
    print("  welcomebot check [config]   # validate configuration")


def main():
    """CLI entry point."""
    from welcomebot.config import load_config

    project_root = Path(__file__).resolve().parent.parent
    default_config = str(project_root / "config.local.yaml")
    if not Path(default_config).exists():
        default_config = str(project_root / "config.yaml")

    args = sys.argv[1:]

    if not args or args[0] in {"-h", "--help", "help"}:
        _print_main_usage()
        return

    config_path = args[1] if len(args) > 1 else default_config

    if args[0] == "check":
        config = load_config(config_path)
        setup_logging(config.log_level, config.log_file)
        raise SystemExit(1 if _log_findings(config) else 0)

    if args[0] not in {"run", "foreground", "fg"}:
        _print_main_usage()
        raise SystemExit(1)

    config = load_config(config_path)
    setup_logging(config.log_level, config.log_file)
    app = WelcomeBot(config_path)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown():
        logger.info("Shutdown signal received")
        loop.create_task(app.stop())

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        loop.run_until_complete(app.stop())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
