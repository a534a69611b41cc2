import logging

from apscheduler.schedulers.background import BackgroundScheduler

from cache import generate_if_stale

logger = logging.getLogger(__name__)


def scheduled_generation(app):
    with app.app_context():
        try:
            post = generate_if_stale()
            if post is not None:
                logger.info("Scheduled generation saved %r", post.title)
        except Exception as e:
            logger.error("Scheduled blog generation failed: %s", e)


def setup_scheduler(app):
    """Start the periodic generation job; returns None in production."""
    if app.config.get("APP_ENV") == "production":
        logger.info("Skipping scheduler setup in production (handled by external cron)")
        return None

    hours = app.config.get("GENERATION_INTERVAL_HOURS", 3)
    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        scheduled_generation,
        "interval",
        hours=hours,
        args=[app],
        id="blog-generation",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Blog generator job scheduled every %sh", hours)
    return scheduler
