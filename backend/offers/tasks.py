"""Celery tasks for offer-related background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def sweep_offer_cache_task(time_budget=None):
    """
    Periodic cache maintenance, scheduled by Celery beat.

    Purges dead cache entries and stops once the time budget is spent, so a
    slow sweep never piles up behind the next run.
    """
    from services.caching import get_offer_cache

    result = get_offer_cache().sweep(time_budget)
    logger.info(f"Offer cache sweep: {result['removed']} removed in {result['elapsed']}s")
    return result
