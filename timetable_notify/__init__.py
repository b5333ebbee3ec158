"""Class reminder and nightly digest push notifications for weekly timetables."""

__version__ = "0.1.0"
