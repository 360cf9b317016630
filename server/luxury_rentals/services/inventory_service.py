"""Inventory service for item registration, status changes and blackout periods."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.timeutils import Clock, isoformat_z, to_naive_utc, utcnow
from ..models.inventory import BlackoutPeriod, InventoryItem
from ..schemas.inventory import AddBlackoutRequest, CreateInventoryItemRequest, UpdateItemStatusRequest
from .availability_service import normalize_item_id

logger = logging.getLogger(__name__)


class InventoryService:
    """Service for inventory item operations."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def get_item(self, item_id: str) -> InventoryItem:
        """
        Get an inventory item by its business id.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = await self.db.get(InventoryItem, normalize_item_id(item_id))
        if not item:
            raise NotFoundError(resource_type="inventory item", resource_id=normalize_item_id(item_id))
        return item

    async def create_item(self, request: CreateInventoryItemRequest, actor: str) -> InventoryItem:
        """
        Register a new rentable item.

        Raises:
            ConflictError: If an item with the same id exists
        """
        if await self.db.get(InventoryItem, request.item_id) is not None:
            raise ConflictError(
                detail=f"Inventory item {request.item_id} already exists",
                conflicting_resource={"item_id": request.item_id},
            )

        item = InventoryItem(
            item_id=request.item_id,
            name=request.name,
            item_type=request.item_type,
            category=request.category,
            brand=request.brand,
            model=request.model,
            year=request.year,
            description=request.description,
            specifications=request.specifications,
            primary_location=request.primary_location,
            minimum_rental_days=request.minimum_rental_days,
            base_price=request.base_price.amount,
            security_deposit=request.security_deposit.amount,
            currency=request.base_price.currency,
            insurance_rate=request.insurance_rate,
            blackout_periods=[],
        )
        if request.pricing_tiers:
            item.pricing_tiers = request.pricing_tiers
        if request.seasonal_multipliers:
            item.seasonal_multipliers = request.seasonal_multipliers

        self.db.add(item)
        await self.db.commit()

        logger.info(
            "Inventory item created",
            extra={
                "item_id": item.item_id,
                "item_type": item.item_type.value,
                "primary_location": item.primary_location,
                "actor": actor,
            }
        )
        return item

    async def update_item_status(self, request: UpdateItemStatusRequest, actor: str) -> InventoryItem:
        """
        Change an item's operational status and/or active flag.

        Raises:
            NotFoundError: If the item does not exist
            ValidationError: If neither field is given
        """
        if request.status is None and request.is_active is None:
            raise ValidationError(
                detail="Either status or is_active must be provided",
                errors={"status": "missing", "is_active": "missing"},
            )

        item = await self.get_item(request.item_id)
        previous_status, previous_active = item.status, item.is_active

        if request.status is not None:
            item.status = request.status
        if request.is_active is not None:
            item.is_active = request.is_active
        item.updated_at = self.clock()

        await self.db.commit()

        logger.info(
            "Inventory item status updated",
            extra={
                "item_id": item.item_id,
                "previous_status": previous_status.value,
                "new_status": item.status.value,
                "previous_active": previous_active,
                "is_active": item.is_active,
                "reason": request.reason,
                "actor": actor,
            }
        )
        return item

    async def add_blackout(self, request: AddBlackoutRequest, actor: str) -> InventoryItem:
        """
        Block an item out for an interval.

        Existing bookings inside the interval are left untouched; only new
        availability checks are affected.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = await self.get_item(request.item_id)
        blackout = BlackoutPeriod(
            item_id=item.item_id,
            start_at=to_naive_utc(request.start_date),
            end_at=to_naive_utc(request.end_date),
            reason=request.reason,
            created_at=self.clock(),
        )
        item.blackout_periods.append(blackout)
        await self.db.commit()

        logger.info(
            "Blackout period added",
            extra={
                "item_id": item.item_id,
                "start_at": isoformat_z(blackout.start_at),
                "end_at": isoformat_z(blackout.end_at),
                "reason": blackout.reason,
                "actor": actor,
            }
        )
        return item
