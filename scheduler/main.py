import logging
import os
import sys

import requests
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logging.getLogger("bugsort.scheduler").warning(
            "Invalid %s=%r, fallback to %.2f",
            name,
            raw,
            default,
        )
        return default
    if minimum is not None and value < minimum:
        logging.getLogger("bugsort.scheduler").warning(
            "Out-of-range %s=%r, fallback to %.2f",
            name,
            raw,
            default,
        )
        return default
    return value


API_BASE_URL = os.getenv("API_BASE_URL", "http://api:4321")
REFRESH_CRON = os.getenv("REFRESH_CRON", "0 6 * * *")
REFRESH_TIMEOUT = _env_float("REFRESH_TIMEOUT", 30.0, minimum=0.1)
REFRESH_PROJECT = os.getenv("REFRESH_PROJECT", "").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "").strip()

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("bugsort.scheduler")


def trigger_refresh(project: str | None = None) -> None:
    url = f"{API_BASE_URL.rstrip('/')}/api/refresh"
    payload = {"project": project} if project else {}
    try:
        logger.info("Triggering refresh for %s: %s", project or "default project", url)
        headers = {"X-Admin-Token": ADMIN_TOKEN} if ADMIN_TOKEN else None
        response = requests.post(url, json=payload, timeout=REFRESH_TIMEOUT, headers=headers)
        logger.info("Refresh response %s: %s", response.status_code, response.text[:500])
    except requests.RequestException as exc:
        logger.error("Refresh failed: %s", exc)


def main() -> None:
    try:
        trigger = CronTrigger.from_crontab(REFRESH_CRON)
    except ValueError as exc:
        logger.error("Invalid REFRESH_CRON '%s': %s", REFRESH_CRON, exc)
        sys.exit(1)

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(trigger_refresh, trigger, args=[REFRESH_PROJECT or None])
    logger.info("Scheduler started with cron: %s", REFRESH_CRON)

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
