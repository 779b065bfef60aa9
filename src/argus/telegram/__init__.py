"""Telegram chat intake."""

from .bot import TelegramBot

__all__ = ["TelegramBot"]
