"""
Lead model — one row per sourced business, carrying its sprint state.

Builders, audit entries and ballots hang off the lead. The version column gives
every sprint write optimistic concurrency on top of the row lock.
"""
from sqlalchemy import Column, Integer, Float, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bridgeit.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True)
    business_name = Column(Text, nullable=False)
    category = Column(Text, default='')
    location = Column(JSON, default=dict)          # {neighborhood, borough, zip}
    hfi_score = Column(Float, default=0.0)
    friction_type = Column(Text, default='')
    friction_clusters = Column(JSON, default=list)  # [{category, count, recent_count, sample_quotes}]
    recency_data = Column(JSON, default=dict)       # {0_30_days, 31_90_days, 90_plus_days}
    time_on_task_estimate = Column(Text, default='')
    review_count = Column(Integer, default=0)
    rating = Column(Float, nullable=True)
    contact = Column(JSON, nullable=True)
    milestones = Column(JSON, nullable=True)
    status = Column(Text, nullable=False, default='qualified')
    is_priority = Column(Boolean, nullable=False, default=False)
    discovered_at = Column(DateTime, server_default=func.now())

    # Sprint state
    sprint_active = Column(Boolean, nullable=False, default=False)
    max_slots = Column(Integer, nullable=True)
    sprint_duration = Column(Integer, nullable=True)   # weeks
    sprint_started_at = Column(DateTime, nullable=True)
    sprint_deadline = Column(DateTime, nullable=True)
    is_paused = Column(Boolean, nullable=False, default=False)
    first_completion_at = Column(DateTime, nullable=True)
    winner_user_id = Column(Text, nullable=True)
    voting_open = Column(Boolean, nullable=False, default=False)
    winner_average_score = Column(Float, nullable=True)

    # Bumped by every sprint write so the version check covers child-row edits too
    updated_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    builders = relationship(
        'ActiveBuilder',
        back_populates='lead',
        cascade='all, delete-orphan',
        order_by='ActiveBuilder.id',
    )
    audit_log = relationship(
        'AuditEntry',
        back_populates='lead',
        cascade='all, delete-orphan',
        order_by='AuditEntry.id',
    )

    __mapper_args__ = {'version_id_col': version}


# Related mappers must be registered before Lead is first used.
from bridgeit.models import active_builder, audit_entry  # noqa: E402,F401
