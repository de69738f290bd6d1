"""
Pick'em Background Scheduler Service

This module keeps games, outcomes and scores fresh using APScheduler:
feed sync of the current week, resolve+score of the current week, and a
daily full season sync.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pickem import db
from pickem.errors import UpstreamDataError
from pickem.models import Game
from pickem.services.outcome_resolver import OutcomeResolver
from pickem.utils.data_sync import DataSync
from pickem.utils.scoring import ScoringEngine
from pickem.utils.timezone_utils import get_current_season

logger = logging.getLogger(__name__)


def resolve_and_score(week, season=None):
    """Resolve outcomes then score a week; shared by jobs, admin routes and the CLI"""
    season = season or get_current_season()
    summary = OutcomeResolver().resolve_week(week, season)
    records = ScoringEngine().score_week(week, season)
    result = summary.to_dict()
    result["records_scored"] = len(records)
    return result


class SchedulerService:
    """Manages automatic background jobs for feed sync and scoring"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.data_sync = None
        self.is_running = False
        self.sync_stats = {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "games_updated": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        with app.app_context():
            self.data_sync = DataSync()

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""

        # Feed sync of the current week (every 5 minutes)
        self.scheduler.add_job(
            func=self._sync_current_week,
            trigger=IntervalTrigger(minutes=5),
            id="sync_current_week",
            name="Sync Current Week",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        # Resolve outcomes and score the current week (every 2 minutes)
        self.scheduler.add_job(
            func=self._resolve_current_week,
            trigger=IntervalTrigger(minutes=2),
            id="resolve_current_week",
            name="Resolve And Score Current Week",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        # Daily full season sync (2 AM UTC)
        self.scheduler.add_job(
            func=self._daily_maintenance,
            trigger=CronTrigger(hour=2, minute=0),
            id="daily_maintenance",
            name="Daily Season Sync",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def _current_week(self):
        season = get_current_season()
        return Game.current_week(season), season

    def _sync_current_week(self):
        """Pull the current week's schedule and results from the feed"""
        with self.app.app_context():
            try:
                week, season = self._current_week()
                if week is None:
                    return

                result = self.data_sync.sync_week(week, season)
                self._update_stats(True, result["created"] + result["updated"])

            except UpstreamDataError as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.warning(f"Feed unavailable for current week sync: {e}")
            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in current week sync: {e}", exc_info=True)

    def _resolve_current_week(self):
        """Resolve and score the current week; the previous week too while it settles"""
        with self.app.app_context():
            try:
                week, season = self._current_week()
                if week is None:
                    return

                weeks = [week - 1, week] if week > 1 else [week]
                for target in weeks:
                    result = resolve_and_score(target, season)
                    if result["picks_updated"]:
                        logger.info(
                            f"Week {target}: {result['picks_updated']} picks resolved, "
                            f"{result['records_scored']} records scored"
                        )

            except Exception as e:
                db.session.rollback()
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error resolving current week: {e}", exc_info=True)

    def _daily_maintenance(self):
        """Daily full season sync"""
        with self.app.app_context():
            try:
                logger.info("Running daily maintenance...")

                success, message = self.data_sync.sync_season_data(get_current_season())

                if success:
                    db.session.expire_all()
                    self._update_stats(True)
                    logger.info(f"Daily maintenance completed: {message}")
                else:
                    self._update_stats(False)
                    self.sync_stats["last_error"] = message
                    logger.warning(f"Daily maintenance issues: {message}")

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in daily maintenance: {e}", exc_info=True)

    def _update_stats(self, success, games_updated=0):
        """Update sync statistics"""
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["games_updated"] += games_updated
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.sync_stats)
        if stats["last_sync"]:
            stats["last_sync"] = stats["last_sync"].isoformat()
        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_sync(self, sync_type="resolve"):
        """Manually trigger a job"""
        jobs = {
            "sync": self._sync_current_week,
            "resolve": self._resolve_current_week,
            "daily": self._daily_maintenance,
        }
        if sync_type not in jobs:
            return False, f"Unknown sync type: {sync_type}"
        jobs[sync_type]()
        return True, f"Manual {sync_type} sync completed"


# Global scheduler instance
scheduler_service = SchedulerService()
