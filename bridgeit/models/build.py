"""
Build + Vote models — the peer-voting ballot for one lead.

A Build is materialized per finalist when voting opens and never edited after.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from bridgeit.database import Base


class Build(Base):
    __tablename__ = 'builds'

    id = Column(Text, primary_key=True)            # "{lead_id}:{builder_id}"
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    builder_id = Column(Text, nullable=False)
    builder_name = Column(Text, default='')
    business_name = Column(Text, default='')
    deployed_url = Column(Text, nullable=True)
    ordinal = Column(Integer, nullable=False, default=0)   # finalist join order, used for tie-breaks
    created_at = Column(DateTime, nullable=False)

    votes = relationship('Vote', back_populates='build', cascade='all, delete-orphan', order_by='Vote.id')


class Vote(Base):
    __tablename__ = 'votes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    build_id = Column(Text, ForeignKey('builds.id'), nullable=False, index=True)
    voter_id = Column(Text, nullable=False)
    score = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False)

    build = relationship('Build', back_populates='votes')

    __table_args__ = (
        UniqueConstraint('build_id', 'voter_id', name='uq_vote_build_voter'),
    )
