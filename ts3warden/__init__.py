"""ts3warden: idle moderation bot for TeamSpeak 3 servers."""

__version__ = "0.1.0"
