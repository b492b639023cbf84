"""
Project milestone (delivery graph) service tests.

Covers creation rules and revenue auto-allocation, predecessor validation
and cycle detection, deletion guards, progress-driven status, completion,
dependency checks, client acceptance, percentage-of-completion revenue
recognition and the project summary.
"""

import datetime
from decimal import Decimal

import pytest

from app.models.project_milestone import ProjectMilestone
from app.schemas.project_milestone import ProjectMilestoneCreate, ProjectMilestoneUpdate
from app.services import project_milestone_service
from app.services.project_milestone_service import _would_create_cycle
from app.utils.exceptions import ConflictError, DomainValidationError, NotFoundError
from tests.conftest import jkt


def _create(db, project, number, **kwargs):
    data = ProjectMilestoneCreate(
        project_id=project.id,
        milestone_number=number,
        name=kwargs.pop("name", f"Phase {number}"),
        planned_start_date=kwargs.pop("planned_start_date", jkt(2025, 2, 1)),
        planned_end_date=kwargs.pop("planned_end_date", jkt(2025, 2, 28, 17)),
        **kwargs,
    )
    return project_milestone_service.create_milestone(db, data)


def _set_predecessor(db, milestone, predecessor_id):
    return project_milestone_service.update_milestone(
        db, milestone.id, ProjectMilestoneUpdate(predecessor_id=predecessor_id)
    )


class TestCreateMilestone:
    """Creation rules and revenue allocation."""

    def test_first_milestone_gets_whole_budget(self, db, project):
        """Budget 50,000,000 with no existing milestones."""
        m = _create(db, project, 1)
        assert m.planned_revenue == Decimal("50000000")
        assert m.remaining_revenue == Decimal("50000000")
        assert m.recognized_revenue == Decimal("0")
        assert m.status == "PENDING"

    def test_allocation_is_not_retroactive(self, db, project):
        first = _create(db, project, 1)
        second = _create(db, project, 2)
        third = _create(db, project, 3)

        db.refresh(first)
        assert first.planned_revenue == Decimal("50000000")
        assert second.planned_revenue == Decimal("25000000")
        # 50,000,000 / 3 rounded to the nearest rupiah
        assert third.planned_revenue == Decimal("16666667")

    def test_explicit_revenue_wins(self, db, project):
        m = _create(db, project, 1, planned_revenue=Decimal("12500000"))
        assert m.planned_revenue == Decimal("12500000")

    def test_no_budget_allocates_zero(self, db, make_project):
        project = make_project(estimated_budget=None)
        assert _create(db, project, 1).planned_revenue == Decimal("0")

    def test_missing_project(self, db):
        data = ProjectMilestoneCreate(
            project_id=9999,
            milestone_number=1,
            name="Orphan",
            planned_start_date=jkt(2025, 2, 1),
            planned_end_date=jkt(2025, 2, 28),
        )
        with pytest.raises(NotFoundError):
            project_milestone_service.create_milestone(db, data)

    def test_duplicate_number(self, db, project):
        _create(db, project, 1)
        with pytest.raises(ConflictError):
            _create(db, project, 1)

    def test_end_must_follow_start(self, db, project):
        with pytest.raises(DomainValidationError):
            _create(db, project, 1, planned_start_date=jkt(2025, 3, 1), planned_end_date=jkt(2025, 3, 1))

    def test_missing_predecessor(self, db, project):
        with pytest.raises(NotFoundError):
            _create(db, project, 1, predecessor_id=9999)

    def test_predecessor_from_other_project(self, db, project, make_project):
        foreign = _create(db, make_project(), 1)
        with pytest.raises(DomainValidationError):
            _create(db, project, 1, predecessor_id=foreign.id)


class TestPredecessorGraph:
    """Predecessor links stay a forest."""

    def test_direct_cycle_rejected(self, db, project):
        """A has no predecessor, B follows A; making B the predecessor of A is circular."""
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)

        with pytest.raises(DomainValidationError):
            _set_predecessor(db, a, b.id)

        db.refresh(a)
        assert a.predecessor_id is None

    def test_long_cycle_rejected(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)
        c = _create(db, project, 3, predecessor_id=b.id)
        d = _create(db, project, 4, predecessor_id=c.id)

        with pytest.raises(DomainValidationError):
            _set_predecessor(db, a, d.id)

    def test_self_reference_rejected(self, db, project):
        a = _create(db, project, 1)
        with pytest.raises(DomainValidationError):
            _set_predecessor(db, a, a.id)

    def test_valid_reassignment(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2)
        c = _create(db, project, 3, predecessor_id=a.id)

        updated = _set_predecessor(db, c, b.id)
        assert updated.predecessor_id == b.id

    def test_detach_with_null(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)
        assert _set_predecessor(db, b, None).predecessor_id is None

    def test_walk_stops_on_existing_loop(self, db, project):
        """Corrupt data (x <-> y) must not hang the cycle check."""
        x = _create(db, project, 1)
        y = _create(db, project, 2, predecessor_id=x.id)
        z = _create(db, project, 3)
        x.predecessor_id = y.id
        db.commit()

        assert _would_create_cycle(db, z.id, x.id) is False

    def test_remove_predecessor_with_successors(self, db, project):
        a = _create(db, project, 1)
        _create(db, project, 2, predecessor_id=a.id)
        with pytest.raises(DomainValidationError):
            project_milestone_service.remove_milestone(db, a.id)

    def test_remove_leaf(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)
        project_milestone_service.remove_milestone(db, b.id)
        project_milestone_service.remove_milestone(db, a.id)
        assert db.query(ProjectMilestone).count() == 0


class TestUpdateMilestone:
    def test_dates_revalidated(self, db, project):
        m = _create(db, project, 1)
        with pytest.raises(DomainValidationError):
            project_milestone_service.update_milestone(
                db, m.id, ProjectMilestoneUpdate(planned_end_date=jkt(2025, 1, 15))
            )

    def test_actual_end_sets_delay(self, db, project):
        m = _create(db, project, 1)
        updated = project_milestone_service.update_milestone(
            db, m.id, ProjectMilestoneUpdate(actual_end_date=jkt(2025, 3, 3, 9))
        )
        # Planned end 28 Feb 17:00, actual 3 Mar 09:00: 2 days 16 hours -> 3
        assert updated.delay_days == 3

    def test_early_finish_has_no_delay(self, db, project):
        m = _create(db, project, 1)
        updated = project_milestone_service.update_milestone(
            db, m.id, ProjectMilestoneUpdate(actual_end_date=jkt(2025, 2, 20))
        )
        assert updated.delay_days == 0

    def test_planned_revenue_refreshes_remaining(self, db, project):
        m = _create(db, project, 1, planned_revenue=Decimal("10000000"))
        project_milestone_service.recognize_revenue(db, m.id, Decimal("50"))

        updated = project_milestone_service.update_milestone(
            db, m.id, ProjectMilestoneUpdate(planned_revenue=Decimal("20000000"))
        )
        assert updated.recognized_revenue == Decimal("5000000")
        assert updated.remaining_revenue == Decimal("15000000")


class TestProgress:
    """Status derives from the completion percentage."""

    @pytest.mark.parametrize("percentage", [Decimal("-1"), Decimal("100.5")])
    def test_out_of_range(self, db, project, percentage):
        m = _create(db, project, 1)
        with pytest.raises(DomainValidationError):
            project_milestone_service.update_progress(db, m.id, percentage)

    def test_status_transitions(self, db, project):
        m = _create(db, project, 1)

        m = project_milestone_service.update_progress(db, m.id, Decimal("30"))
        assert m.status == "IN_PROGRESS"
        assert m.actual_start_date is not None
        assert m.actual_end_date is None
        started = m.actual_start_date

        m = project_milestone_service.update_progress(db, m.id, Decimal("100"))
        assert m.status == "COMPLETED"
        assert m.actual_start_date == started
        assert m.actual_end_date is not None

        m = project_milestone_service.update_progress(db, m.id, Decimal("0"))
        assert m.status == "PENDING"
        assert m.actual_start_date is None
        assert m.actual_end_date is None


class TestCompletionAndDependencies:
    def test_complete_without_predecessor(self, db, project):
        m = project_milestone_service.mark_as_completed(db, _create(db, project, 1).id)
        assert m.status == "COMPLETED"
        assert m.completion_percentage == Decimal("100")
        assert m.actual_end_date is not None

    def test_complete_blocked_by_open_predecessor(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)
        with pytest.raises(DomainValidationError):
            project_milestone_service.mark_as_completed(db, b.id)

    def test_complete_after_predecessor_accepted(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)
        project_milestone_service.mark_as_completed(db, a.id)
        project_milestone_service.accept_milestone(db, a.id, "Budi Santoso")

        assert project_milestone_service.mark_as_completed(db, b.id).status == "COMPLETED"

    def test_dependencies(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)

        check = project_milestone_service.check_dependencies(db, b.id)
        assert check.can_start is False
        assert len(check.reasons) == 1
        assert check.predecessor_status.id == a.id

        project_milestone_service.mark_as_completed(db, a.id)
        check = project_milestone_service.check_dependencies(db, b.id)
        assert check.can_start is True
        assert check.reasons == []

    def test_no_predecessor_can_start(self, db, project):
        check = project_milestone_service.check_dependencies(db, _create(db, project, 1).id)
        assert check.can_start is True
        assert check.predecessor_status is None


class TestAcceptance:
    def test_accept_completed(self, db, project):
        m = _create(db, project, 1)
        project_milestone_service.mark_as_completed(db, m.id)
        m = project_milestone_service.accept_milestone(db, m.id, "Budi Santoso")
        assert m.status == "ACCEPTED"
        assert m.accepted_by == "Budi Santoso"
        assert m.accepted_at is not None

    def test_accept_requires_completed(self, db, project):
        m = _create(db, project, 1)
        with pytest.raises(DomainValidationError):
            project_milestone_service.accept_milestone(db, m.id, "Budi Santoso")


class TestDeliveredMilestonesStayPut:
    """Progress and completion do not move ACCEPTED, BILLED or CANCELLED milestones."""

    @pytest.mark.parametrize("status", ["ACCEPTED", "BILLED", "CANCELLED"])
    def test_progress_rejected(self, db, project, status):
        m = _create(db, project, 1)
        project_milestone_service.mark_as_completed(db, m.id)
        m.status = status
        db.commit()

        with pytest.raises(DomainValidationError):
            project_milestone_service.update_progress(db, m.id, Decimal("50"))
        db.refresh(m)
        assert m.status == status
        assert m.completion_percentage == Decimal("100")
        assert m.actual_end_date is not None

    @pytest.mark.parametrize("status", ["ACCEPTED", "BILLED"])
    def test_completion_rejected(self, db, project, status):
        m = _create(db, project, 1)
        project_milestone_service.mark_as_completed(db, m.id)
        m.status = status
        db.commit()

        with pytest.raises(DomainValidationError):
            project_milestone_service.mark_as_completed(db, m.id)
        db.refresh(m)
        assert m.status == status

    def test_completed_can_still_be_reopened(self, db, project):
        m = _create(db, project, 1)
        project_milestone_service.mark_as_completed(db, m.id)
        m = project_milestone_service.update_progress(db, m.id, Decimal("80"))
        assert m.status == "IN_PROGRESS"


class TestRecognizeRevenue:
    """Percentage-of-completion revenue recognition."""

    def test_partial_then_full(self, db, project):
        m = _create(db, project, 1, planned_revenue=Decimal("10000000"))

        m = project_milestone_service.recognize_revenue(db, m.id, Decimal("40"), Decimal("1500000"))
        assert m.recognized_revenue == Decimal("4000000")
        assert m.remaining_revenue == Decimal("6000000")
        assert m.status == "IN_PROGRESS"
        assert m.actual_cost == Decimal("1500000")

        m = project_milestone_service.recognize_revenue(db, m.id, Decimal("100"))
        assert m.recognized_revenue == Decimal("10000000")
        assert m.remaining_revenue == Decimal("0")
        assert m.status == "COMPLETED"

    def test_nothing_new_to_recognize(self, db, project):
        m = _create(db, project, 1, planned_revenue=Decimal("10000000"))
        project_milestone_service.recognize_revenue(db, m.id, Decimal("50"))
        with pytest.raises(DomainValidationError):
            project_milestone_service.recognize_revenue(db, m.id, Decimal("50"))
        with pytest.raises(DomainValidationError):
            project_milestone_service.recognize_revenue(db, m.id, Decimal("30"))

    def test_cancelled_rejected(self, db, project):
        m = _create(db, project, 1)
        m.status = "CANCELLED"
        db.commit()
        with pytest.raises(DomainValidationError):
            project_milestone_service.recognize_revenue(db, m.id, Decimal("10"))

    def test_out_of_range(self, db, project):
        m = _create(db, project, 1)
        with pytest.raises(DomainValidationError):
            project_milestone_service.recognize_revenue(db, m.id, Decimal("101"))

    def test_missing(self, db):
        with pytest.raises(NotFoundError):
            project_milestone_service.recognize_revenue(db, 9999, Decimal("10"))

    def test_accepted_status_kept(self, db, project):
        m = _create(db, project, 1, planned_revenue=Decimal("10000000"))
        project_milestone_service.mark_as_completed(db, m.id)
        project_milestone_service.accept_milestone(db, m.id, "Budi Santoso")

        m = project_milestone_service.recognize_revenue(db, m.id, Decimal("100"))
        assert m.status == "ACCEPTED"


class TestProjectSummary:
    def test_summary(self, db, project):
        a = _create(db, project, 1, planned_revenue=Decimal("30000000"))
        _create(db, project, 2, planned_revenue=Decimal("20000000"))
        project_milestone_service.recognize_revenue(db, a.id, Decimal("50"))

        summary = project_milestone_service.get_project_summary(db, project.id)
        assert summary.project_number == project.number
        assert summary.milestone_count == 2
        assert summary.total_planned_revenue == 50_000_000
        assert summary.total_recognized_revenue == 15_000_000
        assert summary.total_remaining_revenue == 35_000_000
        assert summary.average_completion == 25.0
        assert summary.by_status["IN_PROGRESS"].count == 1
        assert summary.by_status["IN_PROGRESS"].revenue == 15_000_000
        assert summary.by_status["PENDING"].count == 1

    def test_missing_project(self, db):
        with pytest.raises(NotFoundError):
            project_milestone_service.get_project_summary(db, 9999)

    def test_list_ordered_by_number(self, db, project):
        _create(db, project, 2)
        _create(db, project, 1)
        rows = project_milestone_service.list_by_project(db, project.id)
        assert [r.milestone_number for r in rows] == [1, 2]

    def test_response_shows_predecessor_and_successors(self, db, project):
        a = _create(db, project, 1)
        b = _create(db, project, 2, predecessor_id=a.id)

        detail_a = project_milestone_service.get_detail(db, a.id)
        detail_b = project_milestone_service.get_detail(db, b.id)
        assert detail_a.successor_ids == [b.id]
        assert detail_b.predecessor.milestone_number == 1
        assert isinstance(detail_b.planned_end_date, datetime.datetime)
