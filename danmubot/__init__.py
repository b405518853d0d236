"""Building blocks of a chat robot for Bilibili live rooms."""

__version__ = "0.1.0"