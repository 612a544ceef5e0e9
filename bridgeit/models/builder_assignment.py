"""
BuilderAssignment model — builder → lead index.

The primary key on builder_id is what enforces "one active sprint per builder"
across every lead, even when two joins race.
"""
from sqlalchemy import Column, Text, DateTime, ForeignKey

from bridgeit.database import Base


class BuilderAssignment(Base):
    __tablename__ = 'builder_assignments'

    builder_id = Column(Text, primary_key=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    assigned_at = Column(DateTime, nullable=False)
