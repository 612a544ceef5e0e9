"""
AuditEntry model — append-only log of scout interventions on a lead.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from bridgeit.database import Base


class AuditEntry(Base):
    __tablename__ = 'audit_entries'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    actor = Column(Text, nullable=False)
    action = Column(Text, nullable=False)      # pause/resume/extend/evict/terminate/nudge/flag
    detail = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)

    lead = relationship('Lead', back_populates='audit_log')
