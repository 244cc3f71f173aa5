"""
Cron
====

Time-triggered agent invocations with a persisted job list.
"""

from nanobot.cron.service import CRON_CHANNEL, CronExecutor, CronJob, CronSchedule, CronService, ExecutedJob

__all__ = ["CRON_CHANNEL", "CronExecutor", "CronJob", "CronSchedule", "CronService", "ExecutedJob"]
