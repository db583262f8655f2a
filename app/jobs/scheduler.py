"""
Background Jobs - session sweep and captcha purge
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
import logging

from constants import SESSION_CHECK_INTERVAL_MS

logger = logging.getLogger('main')

CAPTCHA_PURGE_INTERVAL_SECONDS = 60


class JobScheduler:
    """Runs the periodic housekeeping jobs of the gateway"""

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self._jobs_registered = False

    def init_app(self, app, start=True):
        """Register jobs against the app's session registry and captcha store"""
        self._register_jobs(app)
        if start and not self.scheduler.running:
            self.scheduler.start()
            logger.info("Job scheduler initialized")

    def _register_jobs(self, app):
        if self._jobs_registered:
            return

        # Expired sessions are logged out within one check interval
        self.scheduler.add_job(
            func=self.sweep_sessions,
            trigger=IntervalTrigger(seconds=SESSION_CHECK_INTERVAL_MS // 1000),
            id='session_sweep',
            name='Session Sweep',
            args=[app],
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.add_job(
            func=self.purge_captchas,
            trigger=IntervalTrigger(seconds=CAPTCHA_PURGE_INTERVAL_SECONDS),
            id='captcha_purge',
            name='Captcha Purge',
            args=[app],
            max_instances=1,
            coalesce=True,
        )

        self._jobs_registered = True
        logger.info("Background jobs registered")

    def add_job(self, job_id, func, **kwargs):
        self.scheduler.add_job(id=job_id, func=func, **kwargs)

    def get_job(self, job_id):
        return self.scheduler.get_job(job_id)

    @staticmethod
    def sweep_sessions(app):
        registry = app.extensions['library_registry']
        try:
            return registry.reap_expired()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}", exc_info=True)
            return []

    @staticmethod
    def purge_captchas(app):
        return app.extensions['captcha_store'].purge_expired()

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job scheduler shutdown")
