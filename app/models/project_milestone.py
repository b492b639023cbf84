"""ProjectMilestone model — delivery phase in a project's dependency graph."""

from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime


class ProjectMilestone(Base):
    """One delivery phase of a project with schedule, revenue and cost.

    Milestones form a forest through ``predecessor_id`` (same project only,
    never cyclic).  A milestone that is some other milestone's predecessor
    cannot be deleted.

    Attributes:
        id: Primary key.
        project_id: FK to Project.
        milestone_number: Ordinal, unique per project.
        name / name_id: English / Indonesian name.
        description / description_id: English / Indonesian description.
        planned_start_date, planned_end_date: Baseline schedule.
        actual_start_date, actual_end_date: Stamped by progress updates.
        planned_revenue: Revenue allocated to this phase.
        recognized_revenue: Revenue recognised so far.
        remaining_revenue: ``planned_revenue − recognized_revenue``.
        estimated_cost, actual_cost: Cost baseline and actuals.
        priority: "LOW", "MEDIUM", "HIGH", "CRITICAL".
        completion_percentage: Progress 0–100.
        status: "PENDING", "IN_PROGRESS", "COMPLETED", "ACCEPTED", "BILLED",
                "CANCELLED".
        predecessor_id: Optional FK to the milestone that must finish first.
        delay_days: Days the actual end overran the planned end.
        delay_reason: Free-text explanation of the delay.
        deliverables: JSON list of deliverables.
        accepted_by, accepted_at: Client acceptance metadata.
        notes / notes_id: English / Indonesian notes.
    """

    __tablename__ = "project_milestone"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "milestone_number", name="uq_project_milestone_number"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("project.id"), nullable=False, index=True)
    milestone_number = Column(Integer, nullable=False)
    name = Column(String(200), nullable=False)
    name_id = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    description_id = Column(Text, nullable=True)
    planned_start_date = Column(TZDateTime, nullable=False)
    planned_end_date = Column(TZDateTime, nullable=False)
    actual_start_date = Column(TZDateTime, nullable=True)
    actual_end_date = Column(TZDateTime, nullable=True)
    planned_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    recognized_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    remaining_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    estimated_cost = Column(Numeric(15, 2), nullable=True)
    actual_cost = Column(Numeric(15, 2), nullable=False, default=0)
    priority = Column(String(20), nullable=False, default="MEDIUM")
    completion_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="PENDING")
    predecessor_id = Column(
        Integer, ForeignKey("project_milestone.id"), nullable=True, index=True
    )
    delay_days = Column(Integer, nullable=True)
    delay_reason = Column(Text, nullable=True)
    deliverables = Column(JSON, nullable=True)
    accepted_by = Column(String(200), nullable=True)
    accepted_at = Column(TZDateTime, nullable=True)
    notes = Column(Text, nullable=True)
    notes_id = Column(Text, nullable=True)
    created_at = Column(TZDateTime, default=func.now(), nullable=False)
    updated_at = Column(TZDateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="milestones", lazy="select")
    predecessor = relationship(
        "ProjectMilestone",
        remote_side=[id],
        back_populates="successors",
        lazy="select",
    )
    successors = relationship(
        "ProjectMilestone",
        back_populates="predecessor",
        order_by="ProjectMilestone.milestone_number",
        lazy="select",
    )
    payment_milestones = relationship(
        "PaymentMilestone", back_populates="project_milestone", lazy="select"
    )
