"""Run the bot with ``python -m convertbot``."""
from convertbot.main import run

run()
