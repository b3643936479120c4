from datetime import date, datetime, timedelta
from decimal import Decimal

import pydantic
import pytest

from agenda.domain.occurrences.service import OccurrenceService
from agenda.domain.scheduling.schemas import ScheduleCreate, ScheduleUpdate
from agenda.domain.scheduling.service import CalendarService, ScheduleService
from agenda.errors import ScheduleConflictError, ScheduleNotFoundError, ValidationError
from agenda.models import Schedule


@pytest.fixture()
def other_patient(make_patient):
    return make_patient(name="Bruno Lima", email="bruno@example.com")


class TestCreate:
    def test_create_derives_weekday_and_normalizes_time(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id, timeOfDay="9:00")
        assert schedule.id is not None
        assert schedule.weekday == 1
        assert schedule.time_of_day == "09:00"
        assert schedule.active is True
        assert schedule.end_date is None

    def test_once_end_date_collapses_to_start(self, patient, make_schedule):
        schedule = make_schedule(patient.id, frequency="once")
        assert schedule.end_date == schedule.start_date

    def test_weekly_overlap_conflicts(self, db, patient, other_patient, make_schedule):
        make_schedule(patient.id)
        with pytest.raises(ScheduleConflictError) as exc_info:
            make_schedule(other_patient.id, startDate=date(2025, 2, 3))
        assert exc_info.value.patient_id == patient.id
        assert db.query(Schedule).count() == 1

    def test_other_time_or_weekday_does_not_conflict(self, db, patient, other_patient, make_schedule):
        make_schedule(patient.id)
        make_schedule(other_patient.id, timeOfDay="11:00")
        make_schedule(other_patient.id, startDate=date(2025, 1, 7))
        assert db.query(Schedule).count() == 3

    def test_biweekly_out_of_phase_share_slot(self, patient, other_patient, make_schedule):
        make_schedule(patient.id, frequency="biweekly")
        make_schedule(other_patient.id, frequency="biweekly", startDate=date(2025, 1, 13))
        with pytest.raises(ScheduleConflictError):
            make_schedule(other_patient.id, frequency="biweekly", startDate=date(2025, 1, 20))

    def test_monthly_on_different_days(self, patient, other_patient, make_schedule):
        make_schedule(patient.id, frequency="monthly")
        make_schedule(other_patient.id, frequency="monthly", startDate=date(2025, 1, 13))
        with pytest.raises(ScheduleConflictError):
            make_schedule(other_patient.id, frequency="biweekly", startDate=date(2025, 1, 20))

    def test_ended_schedule_frees_slot(self, patient, other_patient, make_schedule):
        make_schedule(patient.id, endDate=date(2025, 1, 27))
        schedule = make_schedule(other_patient.id, startDate=date(2025, 2, 3))
        assert schedule.patient_id == other_patient.id

    def test_inactive_schedule_frees_slot(self, db, patient, other_patient, make_schedule):
        first = make_schedule(patient.id)
        ScheduleService(db).soft_delete_schedule(first.id)
        make_schedule(other_patient.id)

    def test_once_on_cancelled_weekly_slot(self, db, patient, other_patient, make_schedule):
        weekly = make_schedule(patient.id)
        with pytest.raises(ScheduleConflictError):
            make_schedule(other_patient.id, frequency="once", startDate=date(2025, 1, 13))

        OccurrenceService(db).cancel(weekly.id, datetime(2025, 1, 13, 10, 0))
        once = make_schedule(other_patient.id, frequency="once", startDate=date(2025, 1, 13))
        assert once.frequency == "once"

    def test_once_on_rescheduled_weekly_slot(self, db, patient, other_patient, make_schedule):
        weekly = make_schedule(patient.id)
        OccurrenceService(db).reschedule(
            weekly.id, datetime(2025, 1, 13, 10, 0), datetime(2025, 1, 14, 15, 0)
        )
        make_schedule(other_patient.id, frequency="once", startDate=date(2025, 1, 13))

    def test_unknown_patient(self, make_schedule):
        with pytest.raises(ValidationError):
            make_schedule(999)

    def test_weekday_must_match_start_date(self, patient, make_schedule):
        with pytest.raises(ValidationError):
            make_schedule(patient.id, weekday=4)

    def test_end_before_start(self, patient, make_schedule):
        with pytest.raises(ValidationError):
            make_schedule(patient.id, endDate=date(2025, 1, 1))

    def test_both_prices_rejected_by_schema(self, patient):
        with pytest.raises(pydantic.ValidationError):
            ScheduleCreate(
                patientId=patient.id,
                timeOfDay="10:00",
                startDate=date(2025, 1, 6),
                fixedPrice=Decimal("100"),
                priceCategoryId=1,
            )

    def test_malformed_time_rejected_by_schema(self, patient):
        with pytest.raises(pydantic.ValidationError):
            ScheduleCreate(patientId=patient.id, timeOfDay="24:30", startDate=date(2025, 1, 6))


class TestOverwrite:
    def test_update_excludes_itself(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        updated = ScheduleService(db).update_schedule(schedule.id, ScheduleUpdate(notes="room 2"))
        assert updated.id == schedule.id
        assert updated.notes == "room 2"

    def test_moving_into_taken_slot_conflicts(self, db, patient, other_patient, make_schedule):
        make_schedule(patient.id)
        mine = make_schedule(other_patient.id, timeOfDay="11:00")
        with pytest.raises(ScheduleConflictError):
            ScheduleService(db).update_schedule(mine.id, ScheduleUpdate(timeOfDay="10:00"))

        db.expire_all()
        assert db.get(Schedule, mine.id).time_of_day == "11:00"

    def test_new_start_date_rederives_weekday(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        updated = ScheduleService(db).update_schedule(
            schedule.id, ScheduleUpdate(startDate=date(2025, 1, 8))
        )
        assert updated.weekday == 3

    def test_unknown_schedule(self, db):
        with pytest.raises(ScheduleNotFoundError):
            ScheduleService(db).update_schedule(404, ScheduleUpdate(notes="x"))

    def test_unknown_mode(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        with pytest.raises(ValidationError):
            ScheduleService(db).update_schedule(schedule.id, ScheduleUpdate(notes="x"), mode="merge")


class TestHistoryMode:
    def test_split_keeps_weekday(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id, fixedPrice=Decimal("120.00"))
        cutoff = date(2025, 3, 5)  # a Wednesday

        new = ScheduleService(db).update_schedule(
            schedule.id, ScheduleUpdate(timeOfDay="14:00"), mode="history", cutoff=cutoff
        )

        old = db.get(Schedule, schedule.id)
        assert old.end_date == date(2025, 3, 4)
        assert old.time_of_day == "10:00"
        assert new.id != schedule.id
        assert new.start_date == date(2025, 3, 10)
        assert new.weekday == 1
        assert new.time_of_day == "14:00"
        assert new.fixed_price == Decimal("120.00")
        assert new.patient_id == patient.id

    def test_split_keeps_biweekly_phase(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id, frequency="biweekly")
        new = ScheduleService(db).update_schedule(
            schedule.id, ScheduleUpdate(notes="moved room"), mode="history", cutoff=date(2025, 1, 14)
        )
        # Jan 13 is off-cycle for a fortnight anchored on Jan 6
        assert new.start_date == date(2025, 1, 20)
        assert db.get(Schedule, schedule.id).end_date == date(2025, 1, 13)

    def test_split_to_new_weekday(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        new = ScheduleService(db).update_schedule(
            schedule.id, ScheduleUpdate(weekday=5), mode="history", cutoff=date(2025, 2, 1)
        )
        assert new.weekday == 5
        assert new.start_date == date(2025, 2, 7)

    def test_split_can_take_own_slot_back(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        new = ScheduleService(db).update_schedule(
            schedule.id, ScheduleUpdate(notes="same slot"), mode="history", cutoff=date(2025, 2, 10)
        )
        assert new.start_date == date(2025, 2, 10)
        assert new.time_of_day == "10:00"

    def test_cutoff_must_follow_start(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        with pytest.raises(ValidationError):
            ScheduleService(db).update_schedule(
                schedule.id, ScheduleUpdate(notes="x"), mode="history", cutoff=date(2025, 1, 6)
            )
        db.expire_all()
        assert db.get(Schedule, schedule.id).end_date is None

    def test_conflicting_split_rolls_back(self, db, patient, other_patient, make_schedule):
        schedule = make_schedule(patient.id)
        make_schedule(other_patient.id, timeOfDay="14:00")

        with pytest.raises(ScheduleConflictError):
            ScheduleService(db).update_schedule(
                schedule.id, ScheduleUpdate(timeOfDay="14:00"), mode="history", cutoff=date(2025, 3, 5)
            )

        db.expire_all()
        assert db.get(Schedule, schedule.id).end_date is None
        assert db.query(Schedule).count() == 2

    def test_split_cannot_reopen_ended_schedule(self, db, patient, other_patient, make_schedule):
        schedule = make_schedule(patient.id, endDate=date(2025, 1, 27))
        make_schedule(other_patient.id, startDate=date(2025, 2, 3), endDate=date(2025, 3, 31))

        with pytest.raises(ValidationError):
            ScheduleService(db).update_schedule(
                schedule.id, ScheduleUpdate(timeOfDay="11:00"), mode="history", cutoff=date(2025, 6, 2)
            )

        db.expire_all()
        assert db.get(Schedule, schedule.id).end_date == date(2025, 1, 27)
        assert db.query(Schedule).count() == 2
        events = CalendarService(db).generate_calendar(date(2025, 2, 10), date(2025, 2, 10))
        assert [e.patient_id for e in events] == [other_patient.id]

    def test_split_before_existing_end_shortens(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id, endDate=date(2025, 6, 30))
        new = ScheduleService(db).update_schedule(
            schedule.id, ScheduleUpdate(timeOfDay="11:00"), mode="history", cutoff=date(2025, 3, 5)
        )

        db.expire_all()
        assert db.get(Schedule, schedule.id).end_date == date(2025, 3, 4)
        assert new.start_date == date(2025, 3, 10)
        assert new.end_date == date(2025, 6, 30)


class TestTerminateAndDelete:
    def test_terminate(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        terminated = ScheduleService(db).terminate_schedule(schedule.id, date(2025, 2, 24))
        assert terminated.end_date == date(2025, 2, 24)
        assert terminated.active is True

    def test_terminate_before_start(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        with pytest.raises(ValidationError):
            ScheduleService(db).terminate_schedule(schedule.id, date(2024, 12, 31))

    def test_terminate_cannot_extend_into_taken_slot(self, db, patient, other_patient, make_schedule):
        schedule = make_schedule(patient.id, endDate=date(2025, 1, 27))
        rival = make_schedule(other_patient.id, startDate=date(2025, 2, 3))

        with pytest.raises(ScheduleConflictError) as exc_info:
            ScheduleService(db).terminate_schedule(schedule.id, date(2025, 12, 29))

        assert exc_info.value.schedule_id == rival.id
        db.expire_all()
        assert db.get(Schedule, schedule.id).end_date == date(2025, 1, 27)
        events = CalendarService(db).generate_calendar(date(2025, 2, 10), date(2025, 2, 10))
        assert [e.patient_id for e in events] == [other_patient.id]

    def test_terminate_can_extend_into_free_slot(self, db, patient, other_patient, make_schedule):
        schedule = make_schedule(patient.id, endDate=date(2025, 1, 27))
        make_schedule(other_patient.id, timeOfDay="11:00", startDate=date(2025, 2, 3))
        extended = ScheduleService(db).terminate_schedule(schedule.id, date(2025, 3, 31))
        assert extended.end_date == date(2025, 3, 31)

    def test_inactive_schedule_end_is_not_checked(self, db, patient, other_patient, make_schedule):
        schedule = make_schedule(patient.id, endDate=date(2025, 1, 27))
        ScheduleService(db).soft_delete_schedule(schedule.id)
        make_schedule(other_patient.id, startDate=date(2025, 2, 3))

        terminated = ScheduleService(db).terminate_schedule(schedule.id, date(2025, 3, 31))
        assert terminated.end_date == date(2025, 3, 31)
        assert terminated.active is False

    def test_delete_everything_deactivates(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        deleted = ScheduleService(db).delete_schedule(schedule.id, mode="everything")
        assert deleted.active is False
        assert ScheduleService(db).list_schedules() == []
        assert len(ScheduleService(db).list_schedules(include_inactive=True)) == 1

    def test_delete_history_ends_today(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        deleted = ScheduleService(db).delete_schedule(schedule.id)
        assert deleted.active is True
        assert deleted.end_date == date.today()

    def test_delete_future_schedule_deactivates(self, db, patient, make_schedule):
        start = date.today() + timedelta(days=30)
        schedule = make_schedule(patient.id, startDate=start)
        deleted = ScheduleService(db).delete_schedule(schedule.id, mode="history")
        assert deleted.active is False
        assert deleted.end_date is None

    def test_delete_unknown(self, db):
        with pytest.raises(ScheduleNotFoundError):
            ScheduleService(db).delete_schedule(12345)


class TestCalendarService:
    def test_calendar_resolves_patients(self, db, patient, make_schedule):
        make_schedule(patient.id)
        events = CalendarService(db).generate_calendar(date(2025, 1, 1), date(2025, 1, 31))
        assert len(events) == 4
        assert {e.patient_name for e in events} == {"Ana Souza"}

    def test_inactive_schedules_are_not_materialized(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        ScheduleService(db).soft_delete_schedule(schedule.id)
        assert CalendarService(db).generate_calendar(date(2025, 1, 1), date(2025, 1, 31)) == []

    def test_recorded_state_survives_termination(self, db, patient, make_schedule):
        schedule = make_schedule(patient.id)
        OccurrenceService(db).cancel(schedule.id, datetime(2025, 1, 27, 10, 0))
        ScheduleService(db).terminate_schedule(schedule.id, date(2025, 1, 20))

        events = CalendarService(db).generate_calendar(date(2025, 1, 20), date(2025, 1, 31))
        assert [(e.display_at, e.status) for e in events] == [
            (datetime(2025, 1, 20, 10, 0), "available"),
            (datetime(2025, 1, 27, 10, 0), "cancelled"),
        ]

    def test_invalid_ranges(self, db):
        service = CalendarService(db)
        with pytest.raises(ValidationError):
            service.generate_calendar(date(2025, 2, 1), date(2025, 1, 1))
        with pytest.raises(ValidationError):
            service.generate_calendar(date(2025, 1, 1), date(2026, 6, 1))
