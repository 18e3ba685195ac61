"""
Cron Execution Model - audit row written once per orchestration run
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from conditions.db.database import Base


class CronExecution(Base):
    __tablename__ = "cron_executions"

    id = Column(Integer, primary_key=True, index=True)
    executed_at = Column(DateTime, default=datetime.utcnow, index=True)
    status = Column(String(20), nullable=False)  # success / partial / failed

    subscriber_count = Column(Integer, nullable=False, default=0)
    massifs_with_subscribers_count = Column(Integer, nullable=False, default=0)
    updated_bulletins_count = Column(Integer, nullable=False, default=0)
    bulletins_delivered_count = Column(Integer, nullable=False, default=0)

    summary = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    failed_stage = Column(String(50), nullable=True)
    duration_ms = Column(Integer, nullable=False, default=0)
