"""Time-of-day travel estimate used when only a declared distance is known.

Travel time is interpolated linearly inside the active day segment by the
ratio of distance to the segment's maximum plausible distance, and capped
at the segment's upper bound.
"""

import math
from dataclasses import dataclass
from datetime import datetime, time

OUTSIDE_HOURS_MINUTES = 60
SATURDAY = 5


@dataclass(frozen=True)
class DaySegment:
    start: time
    end: time
    max_distance_km: float
    min_minutes: int
    max_minutes: int

    def contains(self, clock: time) -> bool:
        return self.start <= clock < self.end

    def estimate(self, distance_km: float) -> int:
        ratio = min(max(distance_km, 0.0) / self.max_distance_km, 1.0)
        return math.ceil(self.min_minutes + (self.max_minutes - self.min_minutes) * ratio)


MORNING = DaySegment(time(8, 0), time(12, 0), 30.0, 30, 90)
MIDDAY = DaySegment(time(12, 0), time(13, 30), 20.0, 20, 60)
AFTERNOON = DaySegment(time(13, 30), time(17, 40), 25.0, 30, 100)
SATURDAY_AFTERNOON = DaySegment(time(13, 30), time(16, 30), 25.0, 30, 100)

WEEKDAY_SEGMENTS = (MORNING, MIDDAY, AFTERNOON)
SATURDAY_SEGMENTS = (MORNING, MIDDAY, SATURDAY_AFTERNOON)


def estimate_travel_minutes(distance_km: float, at: datetime) -> int:
    """Estimate travel minutes for ``distance_km`` departing at ``at``."""
    segments = SATURDAY_SEGMENTS if at.weekday() == SATURDAY else WEEKDAY_SEGMENTS
    clock = at.time()
    for segment in segments:
        if segment.contains(clock):
            return segment.estimate(distance_km)
    return OUTSIDE_HOURS_MINUTES
