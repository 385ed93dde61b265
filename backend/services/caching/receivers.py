"""Signal receivers keeping the cache coherent with offers and user profiles."""

import logging

from django.contrib.auth import get_user_model
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from offers.signals import offer_mutated
from .coherency import get_offer_cache

logger = logging.getLogger(__name__)

User = get_user_model()


@receiver(offer_mutated, dispatch_uid="offer_cache_invalidation")
def invalidate_on_offer_mutation(sender, mutation, **kwargs):
    get_offer_cache().handle_offer_mutation(mutation)


@receiver(pre_save, sender=User, dispatch_uid="identity_cache_capture_email")
def remember_previous_email(sender, instance, **kwargs):
    """Stash the stored email so an email change drops the old auth entry too."""
    instance._previous_email = None
    if instance.pk:
        instance._previous_email = (
            sender.objects.filter(pk=instance.pk).values_list('email', flat=True).first()
        )


@receiver(post_save, sender=User, dispatch_uid="identity_cache_invalidation")
def invalidate_identity_on_save(sender, instance, created, update_fields=None, **kwargs):
    # Login only bumps last_login; the cached identity is unaffected
    if update_fields and set(update_fields) <= {'last_login'}:
        return
    emails = [instance.email, getattr(instance, '_previous_email', None)]
    removed = get_offer_cache().invalidate_identity(*[e for e in emails if e])
    logger.debug("Dropped auth cache for user %s (%d entries)", instance.pk, removed)
