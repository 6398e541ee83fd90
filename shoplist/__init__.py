"""Real-time shared shopping lists."""

__version__ = "1.0.0"
