"""
Service interfaces for dependency inversion.
Collaborators outside the carpool core are reached only through these.
"""

from .outing_registry import OutingRegistry
from .notification_sink import CarpoolEvent, CarpoolEventType, NotificationSink

__all__ = ['OutingRegistry', 'CarpoolEvent', 'CarpoolEventType', 'NotificationSink']
