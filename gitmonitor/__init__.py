"""gitmonitor - status dashboard backend for many git working trees."""

__version__ = "0.4.0"
