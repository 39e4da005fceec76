"""
netscen.schedule - Timed scenario events and their validation
"""

from netscen.schedule.schedule import (
    EventAction,
    EventHandle,
    OrderedEvents,
    ScenarioSchedule,
    ScheduledEvent,
)

__all__ = ['EventAction', 'EventHandle', 'OrderedEvents', 'ScenarioSchedule', 'ScheduledEvent']
