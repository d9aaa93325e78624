"""Overlap index — per-employee sorted set of active leave intervals.

Two inclusive ranges ``[s1, e1]`` and ``[s2, e2]`` overlap iff
``s1 <= e2 and s2 <= e1``. Only requests of the same employee can conflict.

Active intervals of one employee never overlap each other, so ordering them
by start date also orders them by end date. A lookup therefore only has to
inspect the last interval starting on or before the candidate's end date.
"""

from __future__ import annotations

import uuid
from bisect import bisect_left, bisect_right
from datetime import date
from typing import NamedTuple, Optional

from hr_leave.common.exceptions import InvariantViolation, ValidationException
from hr_leave.leave.records import LeaveRecord


class Interval(NamedTuple):
    start: date
    end: date
    request_id: uuid.UUID


class OverlapIndex:
    """Active (pending / approved) date ranges, keyed by employee id."""

    def __init__(self) -> None:
        self._intervals: dict[uuid.UUID, list[Interval]] = {}
        self._starts: dict[uuid.UUID, list[date]] = {}
        self._owner: dict[uuid.UUID, uuid.UUID] = {}

    def find_conflict(
        self,
        employee_id: uuid.UUID,
        start: date,
        end: date,
    ) -> Optional[uuid.UUID]:
        """Return the id of an active request intersecting ``[start, end]``."""
        if start > end:
            raise ValidationException({"dates": ["start_date must be on or before end_date."]})

        starts = self._starts.get(employee_id)
        if not starts:
            return None

        idx = bisect_right(starts, end)
        if idx == 0:
            return None
        candidate = self._intervals[employee_id][idx - 1]
        if candidate.end >= start:
            return candidate.request_id
        return None

    def check_overlap(self, employee_id: uuid.UUID, start: date, end: date) -> bool:
        return self.find_conflict(employee_id, start, end) is not None

    def register(self, request: LeaveRecord) -> None:
        """Add an active request's range. Registering twice is a no-op."""
        if request.id in self._owner:
            return

        conflict = self.find_conflict(request.employee_id, request.start_date, request.end_date)
        if conflict is not None:
            raise InvariantViolation(
                f"Leave request {request.id} overlaps active request {conflict} "
                f"of employee {request.employee_id}."
            )

        interval = Interval(request.start_date, request.end_date, request.id)
        intervals = self._intervals.setdefault(request.employee_id, [])
        starts = self._starts.setdefault(request.employee_id, [])
        pos = bisect_right(starts, interval.start)
        starts.insert(pos, interval.start)
        intervals.insert(pos, interval)
        self._owner[request.id] = request.employee_id

    def unregister(self, request: LeaveRecord) -> None:
        """Drop a request's range. Unknown requests are ignored."""
        employee_id = self._owner.pop(request.id, None)
        if employee_id is None:
            return

        starts = self._starts[employee_id]
        intervals = self._intervals[employee_id]
        pos = bisect_left(starts, request.start_date)
        while pos < len(intervals) and intervals[pos].request_id != request.id:
            pos += 1
        if pos == len(intervals):
            raise InvariantViolation(
                f"Leave request {request.id} is indexed but its interval is missing."
            )
        del starts[pos]
        del intervals[pos]

        if not intervals:
            del self._starts[employee_id]
            del self._intervals[employee_id]

    def active_intervals(self, employee_id: uuid.UUID) -> list[Interval]:
        return list(self._intervals.get(employee_id, ()))

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._owner
