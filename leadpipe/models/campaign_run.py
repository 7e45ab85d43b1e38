"""
CampaignRun model: run-level counters updated by the result aggregator,
plus the ledger of result sets already folded into a run.
"""
from sqlalchemy import Column, Integer, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from leadpipe.database import Base


class CampaignRun(Base):
    __tablename__ = 'campaign_runs'

    id = Column(Text, primary_key=True)
    status = Column(Text, nullable=False, default='running')
    leads_found = Column(Integer, default=0)
    errors = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)


class AggregatedResultSet(Base):
    __tablename__ = 'aggregated_result_sets'
    __table_args__ = (
        UniqueConstraint('run_id', 'result_prefix', name='uq_aggregated_run_prefix'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, nullable=False)
    result_prefix = Column(Text, nullable=False)
    succeeded = Column(Integer, default=0)
    failed = Column(Integer, default=0)
    files_read = Column(Integer, default=0)
    aggregated_at = Column(DateTime(timezone=True), server_default=func.now())
