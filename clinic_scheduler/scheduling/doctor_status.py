from datetime import datetime

from clinic_scheduler.scheduling.calendar import AvailabilityTemplate, LeaveOverrides
from clinic_scheduler.scheduling.statuses import ConsultationStatus
from clinic_scheduler.scheduling.time_formats import clock_of


def compute_consultation_status(
    template: AvailabilityTemplate,
    leave_overrides: LeaveOverrides | None,
    now: datetime,
) -> ConsultationStatus:
    """In while ``now`` falls inside one of today's sessions and outside today's leave."""
    today = now.date()
    minute = clock_of(now)

    in_session = any(window.contains(minute) for window in template.windows_for(today))
    if not in_session:
        return ConsultationStatus.OUT

    leave = leave_overrides.intervals_for(today) if leave_overrides else []
    if any(interval.start <= minute < interval.end for interval in leave):
        return ConsultationStatus.OUT

    return ConsultationStatus.IN
