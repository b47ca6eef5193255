"""cronspine - durable cron schedules for workflows.

Schedules are persisted with SQLAlchemy and fired by an in-process
APScheduler engine; compensating operations keep the two consistent.
"""

__version__ = "0.1.0"
