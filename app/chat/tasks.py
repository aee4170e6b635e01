"""
Celery tasks for chat app.

This module defines async tasks for:
- Media cleanup after a group and its messages are purged

Related files:
    - services.py: GroupRegistry queues cleanup after a purge commits

Usage:
    from chat.tasks import delete_media_files

    delete_media_files.delay(["chat/media/abc.jpg", "chat/media/def.mp4"])
"""

import logging

from celery import shared_task
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)


@shared_task
def delete_media_files(media_refs: list[str]) -> int:
    """
    Delete stored media for purged group messages.

    Best-effort: a reference that cannot be deleted is logged and skipped,
    the remaining references are still processed.

    Args:
        media_refs: Storage names of the blobs to delete

    Returns:
        Number of blobs deleted
    """
    deleted = 0
    for ref in media_refs:
        try:
            if default_storage.exists(ref):
                default_storage.delete(ref)
                deleted += 1
            else:
                logger.debug(f"Media {ref} already gone")
        except Exception as e:
            logger.error(f"Failed to delete media {ref}: {e}")

    logger.info(f"Deleted {deleted}/{len(media_refs)} media files")
    return deleted
