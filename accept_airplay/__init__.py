"""Background agent that accepts AirPlay requests shown by macOS Notification Center."""

__version__ = "1.0.0"
