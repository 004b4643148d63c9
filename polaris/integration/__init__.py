"""
Integration module for mail and calendar providers.
"""
from .base import CalendarPort, IntegrationError, MailPort
from .google import GoogleCalendarIntegration, GoogleMailIntegration

__all__ = [
    "MailPort",
    "CalendarPort",
    "IntegrationError",
    "GoogleMailIntegration",
    "GoogleCalendarIntegration",
]
