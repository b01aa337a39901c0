import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.models.class_ import ClassOffering
from app.models.enrollment import Enrollment, EnrollmentStatus, utcnow
from app.schemas.capacity import CapacityChanged, CapacityValidation
from app.schemas.enrollment import (
    Admitted,
    ClassNotFound,
    Completed,
    Dropped,
    NoSeatAvailable,
    Promoted,
    Rejected,
    RejectionReason,
    WaitlistEmpty,
)
from app.services.admission_service import AdmissionService
from app.services.capacity_snapshot import read_snapshot
from app.services.waitlist_service import WaitlistService
from core.locks import ClassLockRegistry

pytestmark = pytest.mark.asyncio


async def records_for(session_factory, class_id):
    async with session_factory() as db_session:
        result = await db_session.execute(
            select(Enrollment).where(Enrollment.class_id == class_id)
        )
        return result.scalars().all()


async def waitlist_positions(session_factory, class_id):
    """Waitlisted student ids mapped to their positions."""
    return {
        record.student_id: record.waitlist_position
        for record in await records_for(session_factory, class_id)
        if record.status == EnrollmentStatus.WAITLISTED
    }


def assert_contiguous(positions):
    assert sorted(positions.values()) == list(range(1, len(positions) + 1))


@pytest.fixture
def small_services(session_factory, class_locks):
    """Admission and waitlist services sharing a waitlist limit of 2."""
    return (
        AdmissionService(session_factory, class_locks, waitlist_limit=2),
        WaitlistService(session_factory, class_locks, waitlist_limit=2),
    )


class TestAdmit:
    """Tests for admission decisions."""

    async def test_basic_admission(self, small_services, create_class):
        admissions, _ = small_services
        class_id = await create_class(max_students=2)

        s1 = await admissions.admit(class_id, "S1")
        s2 = await admissions.admit(class_id, "S2")
        s3 = await admissions.admit(class_id, "S3")
        s4 = await admissions.admit(class_id, "S4")
        s5 = await admissions.admit(class_id, "S5")

        assert isinstance(s1, Admitted) and s1.status == EnrollmentStatus.ENROLLED
        assert s1.seat_number == 1
        assert isinstance(s2, Admitted) and s2.seat_number == 2
        assert s3.waitlisted and s3.waitlist_position == 1
        assert s4.waitlisted and s4.waitlist_position == 2
        assert isinstance(s5, Rejected)
        assert s5.reason == RejectionReason.CLASS_FULL_AND_WAITLIST_FULL
        assert s5.message == "Class is full and waiting list is at capacity"

    async def test_already_enrolled(self, admission_service, create_class):
        class_id = await create_class(max_students=2)
        await admission_service.admit(class_id, "S1")

        result = await admission_service.admit(class_id, "S1")

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.ALREADY_ENROLLED

    async def test_already_waitlisted(self, admission_service, create_class):
        class_id = await create_class(max_students=1)
        await admission_service.admit(class_id, "S1")
        await admission_service.admit(class_id, "S2")

        result = await admission_service.admit(class_id, "S2")

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.ALREADY_WAITLISTED
        assert len(await records_for(admission_service.session_factory, class_id)) == 2

    async def test_unknown_class(self, admission_service):
        result = await admission_service.admit("missing", "S1")

        assert isinstance(result, ClassNotFound)

    async def test_zero_waitlist_limit_rejects_when_full(self, session_factory, class_locks, create_class):
        service = AdmissionService(session_factory, class_locks, waitlist_limit=0)
        class_id = await create_class(max_students=1)
        await service.admit(class_id, "S1")

        result = await service.admit(class_id, "S2")

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.CLASS_FULL_AND_WAITLIST_FULL

    async def test_readmission_after_drop(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=2)
        await admission_service.admit(class_id, "S1")
        await waitlist_service.drop(class_id, "S1")

        result = await admission_service.admit(class_id, "S1")

        assert isinstance(result, Admitted)
        assert result.seat_number == 1

    async def test_concurrent_admissions_respect_capacity(self, admission_service, create_class):
        class_id = await create_class(max_students=3)

        results = await asyncio.gather(
            *(admission_service.admit(class_id, f"S{i}") for i in range(10))
        )

        enrolled = [r for r in results if isinstance(r, Admitted) and not r.waitlisted]
        waitlisted = [r for r in results if isinstance(r, Admitted) and r.waitlisted]
        assert len(enrolled) == 3
        assert len(waitlisted) == 7
        assert sorted(r.seat_number for r in enrolled) == [1, 2, 3]
        assert sorted(r.waitlist_position for r in waitlisted) == list(range(1, 8))

    async def test_concurrent_admissions_respect_waitlist_ceiling(self, small_services, create_class):
        admissions, _ = small_services
        class_id = await create_class(max_students=3)

        results = await asyncio.gather(
            *(admissions.admit(class_id, f"S{i}") for i in range(10))
        )

        statuses = [r.status for r in results if isinstance(r, Admitted)]
        rejected = [r for r in results if isinstance(r, Rejected)]
        assert statuses.count(EnrollmentStatus.ENROLLED) == 3
        assert statuses.count(EnrollmentStatus.WAITLISTED) == 2
        assert len(rejected) == 5
        assert all(r.reason == RejectionReason.CLASS_FULL_AND_WAITLIST_FULL for r in rejected)

    async def test_duplicate_across_processes_rejected_by_store(
        self, session_factory, create_class
    ):
        """Two services with separate lock registries race on the same student."""
        class_id = await create_class(max_students=5)
        first = AdmissionService(session_factory, ClassLockRegistry())
        second = AdmissionService(session_factory, ClassLockRegistry())

        # Hold both callers after their duplicate check until both have made it
        arrived = 0
        both_checked = asyncio.Event()

        async def read_snapshot_after_both_checked(*args, **kwargs):
            nonlocal arrived
            arrived += 1
            if arrived == 2:
                both_checked.set()
            await asyncio.wait_for(both_checked.wait(), timeout=5)
            return await read_snapshot(*args, **kwargs)

        with patch(
            "app.services.admission_service.read_snapshot",
            new=read_snapshot_after_both_checked,
        ):
            results = await asyncio.gather(
                first.admit(class_id, "S1"), second.admit(class_id, "S1")
            )

        admitted = [r for r in results if isinstance(r, Admitted)]
        rejected = [r for r in results if isinstance(r, Rejected)]
        assert len(admitted) == 1
        assert len(rejected) == 1
        assert rejected[0].reason == RejectionReason.ALREADY_ENROLLED
        records = await records_for(session_factory, class_id)
        assert [r.status for r in records] == [EnrollmentStatus.ENROLLED]

    async def test_concurrent_duplicate_admission(self, admission_service, create_class):
        class_id = await create_class(max_students=5)

        results = await asyncio.gather(
            *(admission_service.admit(class_id, "S1") for _ in range(4))
        )

        admitted = [r for r in results if isinstance(r, Admitted)]
        rejected = [r for r in results if isinstance(r, Rejected)]
        assert len(admitted) == 1
        assert len(rejected) == 3
        assert all(r.reason == RejectionReason.ALREADY_ENROLLED for r in rejected)


class TestDropAndPromote:
    """Tests for drops and waitlist promotion."""

    async def test_drop_promotes_head_of_waitlist(self, small_services, create_class):
        admissions, waitlist = small_services
        class_id = await create_class(max_students=2)
        for student_id in ("S1", "S2", "S3", "S4"):
            await admissions.admit(class_id, student_id)

        result = await waitlist.drop(class_id, "S1")

        assert isinstance(result, Dropped)
        assert result.promoted is True
        assert result.promoted_student_id == "S3"
        records = {r.student_id: r for r in await records_for(waitlist.session_factory, class_id)}
        assert records["S1"].status == EnrollmentStatus.DROPPED
        assert records["S3"].status == EnrollmentStatus.ENROLLED
        assert records["S3"].waitlist_position is None
        assert records["S3"].enrolled_at is not None
        assert records["S4"].waitlist_position == 1

    async def test_drop_waitlisted_closes_gap(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=1)
        for student_id in ("S1", "S2", "S3", "S4"):
            await admission_service.admit(class_id, student_id)

        result = await waitlist_service.drop(class_id, "S3")

        assert result.promoted is False
        positions = await waitlist_positions(waitlist_service.session_factory, class_id)
        assert positions == {"S2": 1, "S4": 2}

    async def test_drop_without_waitlist(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=2)
        await admission_service.admit(class_id, "S1")

        result = await waitlist_service.drop(class_id, "S1")

        assert result.promoted is False
        assert result.promoted_student_id is None

    async def test_drop_not_enrolled(self, waitlist_service, create_class):
        class_id = await create_class(max_students=2)

        result = await waitlist_service.drop(class_id, "ghost")

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.NOT_ENROLLED

    async def test_drop_twice(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=2)
        await admission_service.admit(class_id, "S1")
        await waitlist_service.drop(class_id, "S1")

        result = await waitlist_service.drop(class_id, "S1")

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.NOT_ENROLLED

    async def test_promote_next_without_free_seat(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=1)
        await admission_service.admit(class_id, "S1")
        await admission_service.admit(class_id, "S2")

        result = await waitlist_service.promote_next(class_id)

        assert isinstance(result, NoSeatAvailable)

    async def test_promote_next_with_empty_waitlist(self, waitlist_service, create_class):
        class_id = await create_class(max_students=1)

        result = await waitlist_service.promote_next(class_id)

        assert isinstance(result, WaitlistEmpty)

    async def test_promotion_is_fifo(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=1)
        for student_id in ("S1", "W1", "W2", "W3"):
            await admission_service.admit(class_id, student_id)

        promoted = []
        for enrolled in ("S1", "W1", "W2"):
            result = await waitlist_service.drop(class_id, enrolled)
            promoted.append(result.promoted_student_id)

        assert promoted == ["W1", "W2", "W3"]

    async def test_waitlist_stays_contiguous(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=2)
        for i in range(8):
            await admission_service.admit(class_id, f"S{i}")

        await waitlist_service.drop(class_id, "S4")
        await waitlist_service.drop(class_id, "S0")
        await admission_service.admit(class_id, "S8")
        await waitlist_service.drop(class_id, "S7")
        await waitlist_service.promote_next(class_id)

        positions = await waitlist_positions(admission_service.session_factory, class_id)
        assert_contiguous(positions)
        assert list(sorted(positions, key=positions.get)) == ["S3", "S5", "S6", "S8"]

    async def test_drop_racing_admission_hands_seat_to_waitlist(
        self, admission_service, waitlist_service, create_class
    ):
        class_id = await create_class(max_students=1)
        await admission_service.admit(class_id, "S1")
        await admission_service.admit(class_id, "W1")

        dropped, admitted = await asyncio.gather(
            waitlist_service.drop(class_id, "S1"),
            admission_service.admit(class_id, "X"),
        )

        assert dropped.promoted_student_id == "W1"
        assert admitted.status == EnrollmentStatus.WAITLISTED
        positions = await waitlist_positions(admission_service.session_factory, class_id)
        assert positions == {"X": 1}

    async def test_concurrent_drops_promote_in_waitlist_order(
        self, admission_service, waitlist_service, create_class
    ):
        class_id = await create_class(max_students=3)
        for student_id in ("A", "B", "C", "W1", "W2", "W3"):
            await admission_service.admit(class_id, student_id)

        results = await asyncio.gather(
            *(waitlist_service.drop(class_id, s) for s in ("C", "A", "B"))
        )

        assert sorted(r.promoted_student_id for r in results) == ["W1", "W2", "W3"]
        records = await records_for(admission_service.session_factory, class_id)
        promoted = sorted(
            (r for r in records if r.student_id.startswith("W")),
            key=lambda r: r.enrolled_at,
        )
        assert [r.student_id for r in promoted] == ["W1", "W2", "W3"]

    async def test_join_time_never_precedes_waitlist_tail(
        self, admission_service, waitlist_service, create_class, db_session
    ):
        class_id = await create_class(max_students=1)
        await admission_service.admit(class_id, "S1")
        # Written by a host whose clock runs an hour ahead
        await Enrollment.create_enrollment(
            db_session,
            class_id=class_id,
            student_id="W-fast",
            status=EnrollmentStatus.WAITLISTED,
            waitlisted_at=utcnow() + timedelta(hours=1),
            waitlist_position=1,
        )
        await db_session.commit()
        await admission_service.admit(class_id, "X")
        await admission_service.admit(class_id, "Y")

        await waitlist_service.drop(class_id, "Y")

        positions = await waitlist_positions(admission_service.session_factory, class_id)
        assert positions == {"W-fast": 1, "X": 2}

    async def test_waiting_list_in_position_order(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=1)
        for student_id in ("S1", "W1", "W2"):
            await admission_service.admit(class_id, student_id)

        entries = await waitlist_service.get_waiting_list(class_id)

        assert [(e.student_id, e.position) for e in entries] == [("W1", 1), ("W2", 2)]
        assert all(e.waitlisted_at is not None for e in entries)

    async def test_records_are_never_deleted(self, admission_service, waitlist_service, create_class):
        class_id = await create_class(max_students=1)
        for student_id in ("S1", "S2", "S3"):
            await admission_service.admit(class_id, student_id)
        await waitlist_service.drop(class_id, "S1")
        await waitlist_service.drop(class_id, "S3")

        records = await records_for(admission_service.session_factory, class_id)

        assert len(records) == 3
        statuses = sorted(r.status.value for r in records)
        assert statuses == ["dropped", "dropped", "enrolled"]


class TestChangeCapacity:
    """Tests for capacity changes."""

    async def test_increase_fills_from_waitlist(self, admission_service, create_class):
        class_id = await create_class(max_students=3)
        for i in range(6):
            await admission_service.admit(class_id, f"S{i}")

        result = await admission_service.change_capacity(class_id, 5)

        assert isinstance(result, CapacityChanged)
        assert result.max_capacity == 5
        assert result.promoted_student_ids == ["S3", "S4"]
        positions = await waitlist_positions(admission_service.session_factory, class_id)
        assert positions == {"S5": 1}

    async def test_reset_to_optimal(self, admission_service, create_class):
        class_id = await create_class(offering_type="Speak Up", max_students=9)

        result = await admission_service.change_capacity(class_id)

        assert result.max_capacity == 7

    async def test_rejects_out_of_policy(self, admission_service, create_class):
        class_id = await create_class(offering_type="1-on-1", max_students=1)

        result = await admission_service.change_capacity(class_id, 2)

        assert isinstance(result, CapacityValidation)
        assert result.valid is False
        assert result.recommended_capacity == 1

    async def test_rejects_below_enrollment(self, admission_service, create_class):
        class_id = await create_class(max_students=5)
        for i in range(5):
            await admission_service.admit(class_id, f"S{i}")

        result = await admission_service.change_capacity(class_id, 4)

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.CAPACITY_BELOW_ENROLLMENT

    async def test_fill_open_seats(self, admission_service, waitlist_service, create_class, db_session):
        class_id = await create_class(max_students=1)
        for student_id in ("S1", "W1", "W2"):
            await admission_service.admit(class_id, student_id)
        # Capacity raised outside the service, e.g. by a catalog sync
        class_obj = await ClassOffering.get_by_id(db_session, class_id)
        class_obj.max_students = 4
        await db_session.commit()

        promoted = await waitlist_service.fill_open_seats(class_id)

        assert [p.student_id for p in promoted] == ["W1", "W2"]
        assert all(isinstance(p, Promoted) for p in promoted)


class TestComplete:
    """Tests for completing enrollments."""

    async def test_complete_enrolled(self, admission_service, create_class):
        class_id = await create_class(max_students=1)
        await admission_service.admit(class_id, "S1")
        await admission_service.admit(class_id, "W1")

        result = await admission_service.complete(class_id, "S1")

        assert isinstance(result, Completed)
        positions = await waitlist_positions(admission_service.session_factory, class_id)
        # Completion frees the seat but leaves promotion to the caller
        assert positions == {"W1": 1}

    async def test_complete_waitlisted_is_rejected(self, admission_service, create_class):
        class_id = await create_class(max_students=1)
        await admission_service.admit(class_id, "S1")
        await admission_service.admit(class_id, "W1")

        result = await admission_service.complete(class_id, "W1")

        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.NOT_ENROLLED
