"""Listing status side effects driven by the room lifecycle."""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.models.enums import ListingStatus
from dealroom.models.listings import Listing

logger = structlog.get_logger()


async def set_status(
    db: AsyncSession, listing_id: uuid.UUID | None, status: ListingStatus
) -> Listing | None:
    """Flip the linked listing's status. No-op when the room has no listing."""
    if listing_id is None:
        return None
    listing = await db.get(Listing, listing_id)
    if listing is None or listing.is_deleted:
        logger.warning("listing_missing_for_status_change", listing_id=str(listing_id), status=status.value)
        return None
    if listing.status == status:
        return listing
    previous = listing.status
    listing.status = status
    await db.flush()
    logger.info(
        "listing_status_changed",
        listing_id=str(listing_id),
        from_status=previous.value,
        to_status=status.value,
    )
    return listing
