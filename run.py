from curvebot.config import TOKEN
from curvebot.logging_setup import setup_logging, log
from curvebot.bot import Bot

if __name__ == "__main__":
    setup_logging()
    if not TOKEN:
        log.error("DISCORD_TOKEN is not set")
        raise SystemExit(1)
    bot = Bot()
    bot.run(TOKEN, log_handler=None)
