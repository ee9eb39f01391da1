"""
SqlAttendanceSource tests.
"""

from datetime import date
from decimal import Decimal

from payroll_kernel.db.engine import session_scope
from payroll_kernel.domain.values import AttendanceStatus
from payroll_kernel.selectors.attendance_selector import SqlAttendanceSource
from tests.conftest import JAN_END, JAN_START


def _list(session_factory, worker_id, start=JAN_START, end=JAN_END):
    with session_scope(session_factory) as session:
        return SqlAttendanceSource(session).list_attendance(worker_id, start, end)


class TestSqlAttendanceSource:
    def test_one_worker_in_date_order(self, service, make_worker, session_factory):
        worker = make_worker()
        other = make_worker()
        service.record_attendance(worker.id, date(2024, 1, 3), "present")
        service.record_attendance(worker.id, date(2024, 1, 1), "half-day")
        service.record_attendance(other.id, date(2024, 1, 2), "absent")

        records = _list(session_factory, worker.id)

        assert [r.work_date for r in records] == [date(2024, 1, 1), date(2024, 1, 3)]
        assert records[0].status == AttendanceStatus.HALF_DAY
        assert records[0].hours_worked == Decimal("4")
        assert records[1].hourly_rate == Decimal("50")

    def test_all_workers(self, service, make_worker, session_factory):
        a = make_worker()
        b = make_worker()
        service.record_attendance(a.id, date(2024, 1, 5), "present")
        service.record_attendance(b.id, date(2024, 1, 5), "holiday")

        records = _list(session_factory, None)
        assert {r.worker_id for r in records} == {a.id, b.id}

    def test_range_is_inclusive(self, service, make_worker, session_factory):
        worker = make_worker()
        for day in (date(2023, 12, 31), JAN_START, JAN_END, date(2024, 2, 1)):
            service.record_attendance(worker.id, day, "present")

        records = _list(session_factory, worker.id)
        assert [r.work_date for r in records] == [JAN_START, JAN_END]

    def test_empty_period(self, make_worker, session_factory):
        worker = make_worker()
        assert tuple(_list(session_factory, worker.id)) == ()
