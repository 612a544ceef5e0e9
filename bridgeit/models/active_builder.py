"""
ActiveBuilder model — one builder's participation in one lead's sprint.
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from bridgeit.database import Base


class ActiveBuilder(Base):
    __tablename__ = 'active_builders'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    user_id = Column(Text, nullable=False)
    user_name = Column(Text, default='')
    joined_at = Column(DateTime, nullable=False)
    checkpoints_completed = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True)
    selected_deliverables = Column(JSON, default=list)
    proof_links = Column(JSON, default=list)            # append-only
    checkpoint_statuses = Column(JSON, default=dict)    # "milestone id" → {status, proofLink, submittedAt, ...}
    last_checkpoint_update = Column(DateTime, nullable=True)
    last_nudged_at = Column(DateTime, nullable=True)
    flagged_at = Column(DateTime, nullable=True)
    flagged_expires_at = Column(DateTime, nullable=True)

    # Scout review
    quality_score = Column(Float, nullable=True)
    scout_review_score = Column(Float, nullable=True)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    lead = relationship('Lead', back_populates='builders')

    __table_args__ = (
        UniqueConstraint('lead_id', 'user_id', name='uq_active_builder_lead_user'),
    )

    @property
    def has_review(self):
        return self.reviewed_at is not None
