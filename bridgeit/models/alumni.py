"""
AlumniProfile model — builder directory entry.
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON
from sqlalchemy.sql import func

from bridgeit.database import Base


class AlumniProfile(Base):
    __tablename__ = 'alumni'

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    email = Column(Text, default='')
    specialty = Column(Text, default='')
    quality_rating = Column(Float, nullable=True)
    current_build_count = Column(Integer, nullable=False, default=0)
    completed_builds = Column(JSON, default=list)   # [{leadId, businessName, awardedAt}]
    created_at = Column(DateTime, server_default=func.now())
