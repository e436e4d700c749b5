from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ..attendance.model import DailyAttendance
from ..attendance.repository import UnitOfWorkFactory
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class ReportData:
    rows: list[dict]
    summary: dict


def _fmt_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class AttendanceReportService:
    """Per-day rows and simple totals for one user over a date range."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    async def build_summary(self, user_id: str, start: date, end: date) -> ReportData:
        if start > end:
            raise ValidationError("start must be on or before end")

        async with self._uow_factory() as uow:
            records = list(await uow.attendance.list_for_user_between(user_id, start, end))

        records.sort(key=lambda r: r.work_date)
        rows: list[dict] = []
        total_minutes = 0
        flagged_days = 0

        for r in records:
            minutes = self._worked_minutes(r)
            total_minutes += minutes
            if r.is_flagged:
                flagged_days += 1

            rows.append(
                {
                    "work_date": r.work_date.strftime("%Y-%m-%d"),
                    "work_location": r.work_location.value,
                    "clock_in": r.clock_in_time.strftime("%H:%M") if r.clock_in_time else "-",
                    "clock_out": r.clock_out_time.strftime("%H:%M") if r.clock_out_time else "-",
                    "worked_hours": _fmt_minutes(minutes),
                    "status": r.status.value,
                    "is_flagged": r.is_flagged,
                    "flag_reason": r.flag_reason or "",
                }
            )

        summary = {
            "user_id": user_id,
            "start": start.strftime("%Y-%m-%d"),
            "end": end.strftime("%Y-%m-%d"),
            "days_present": sum(1 for r in records if r.is_clocked_in),
            "total_hours": _fmt_minutes(total_minutes),
            "flagged_days": flagged_days,
        }
        return ReportData(rows=rows, summary=summary)

    @staticmethod
    def _worked_minutes(record: DailyAttendance) -> int:
        # open days count as zero until clock-out
        if record.total_hours is not None:
            return int(round(record.total_hours * 60))
        if record.clock_in_time and record.clock_out_time:
            return int((record.clock_out_time - record.clock_in_time).total_seconds() // 60)
        return 0
