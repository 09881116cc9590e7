import signal

from loguru import logger

from jupiter_arb_bot.config import AppSettings
from jupiter_arb_bot.db import Base, make_engine, make_session_factory
from jupiter_arb_bot.errors import BalanceShortfall, StartupError
from jupiter_arb_bot.runner import ArbitrageBot
from jupiter_arb_bot.state import StopReason


def install_signal_handlers(bot: ArbitrageBot) -> None:
    # POSIX only; SIGINT keeps its default KeyboardInterrupt behaviour
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda *_: bot.state.toggle_trading())
    if hasattr(signal, "SIGUSR2"):
        signal.signal(signal.SIGUSR2, lambda *_: bot.state.overrides.request_force())


def main() -> int:
    settings = AppSettings()
    logger.remove()
    logger.add(lambda m: print(m, end=""), level=settings.log_level)

    if settings.database_url.startswith("sqlite"):
        # Local SQLite history has no migration step
        Base.metadata.create_all(make_engine(settings.database_url))
    SessionFactory = make_session_factory(settings.database_url)
    try:
        bot = ArbitrageBot.create(settings, SessionFactory)
        bot.startup_check()
    except (StartupError, BalanceShortfall) as e:
        logger.error("Startup failed: {}", e)
        return 1
    except Exception as e:
        logger.exception("Error during bot initialization: {}", e)
        return 1

    install_signal_handlers(bot)
    reason = bot.run()
    try:
        bot.history.dump_json(settings.history_path)
    except OSError as e:
        logger.error("Error saving trade history: {}", e)

    if reason in (StopReason.BALANCE_SHORTFALL, StopReason.ERROR_CEILING):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
