# Harmony Chat: streaming chat server for Harmony-format local models.

__version__ = "0.1.0"
