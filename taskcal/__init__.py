"""Personal task manager that mirrors tasks to Google Calendar."""

__version__ = '0.1.0'
