"""
Specialists: one capability handler per domain.
"""
from .base import Specialist
from .calendar import CalendarSpecialist
from .chat import ChatSpecialist
from .gmail import GmailSpecialist
from .help import HelpSpecialist, VersionSpecialist
from .sheets import SheetSpecialist

__all__ = [
    "Specialist",
    "HelpSpecialist",
    "VersionSpecialist",
    "ChatSpecialist",
    "SheetSpecialist",
    "CalendarSpecialist",
    "GmailSpecialist",
]
