"""Inventory router for item registration, status and blackout management."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import require_staff
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import Money
from ..schemas.inventory import (
    AddBlackoutRequest,
    BlackoutPeriod,
    CreateInventoryItemRequest,
    GetInventoryItemRequest,
    InventoryItem,
    UpdateItemStatusRequest,
)
from ..services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/inventory", tags=["inventory"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
STAFF_DEPENDENCY = Depends(require_staff)


def _convert_item_to_schema(item_model) -> InventoryItem:
    """Convert inventory item model to schema."""
    return InventoryItem(
        item_id=item_model.item_id,
        name=item_model.name,
        item_type=item_model.item_type,
        category=item_model.category,
        brand=item_model.brand,
        model=item_model.model,
        year=item_model.year,
        primary_location=item_model.primary_location,
        is_active=item_model.is_active,
        status=item_model.status,
        minimum_rental_days=item_model.minimum_rental_days,
        base_price=Money(amount=item_model.base_price, currency=item_model.currency),
        security_deposit=Money(amount=item_model.security_deposit, currency=item_model.currency),
        insurance_rate=item_model.insurance_rate,
        blackout_periods=[
            BlackoutPeriod(
                id=str(blackout.id),
                start_at=blackout.start_at,
                end_at=blackout.end_at,
                reason=blackout.reason,
            )
            for blackout in sorted(item_model.blackout_periods, key=lambda b: b.start_at)
        ],
        total_bookings=item_model.total_bookings,
        total_revenue=item_model.total_revenue,
        last_booked_at=item_model.last_booked_at,
    )


def _item_response(item_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=_convert_item_to_schema(item_model).model_dump(mode="json")
    )


@router.post("/create", response_model=InventoryItem, status_code=201)
async def create_item(
    request: CreateInventoryItemRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: dict = STAFF_DEPENDENCY
) -> JSONResponse:
    """Register a rentable item. Requires a staff token."""
    inventory_service = InventoryService(db)

    try:
        item = await inventory_service.create_item(request, actor=user["user_id"])
        return _item_response(item, status_code=201)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during item creation",
            extra={"item_id": request.item_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to create inventory item")


@router.post("/get", response_model=InventoryItem)
async def get_item(
    request: GetInventoryItemRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get an inventory item with its blackout periods."""
    inventory_service = InventoryService(db)

    try:
        item = await inventory_service.get_item(request.item_id)
        return _item_response(item)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during item retrieval",
            extra={"item_id": request.item_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to retrieve inventory item")


@router.post("/status/update", response_model=InventoryItem)
async def update_item_status(
    request: UpdateItemStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: dict = STAFF_DEPENDENCY
) -> JSONResponse:
    """Change an item's operational status or take it out of service."""
    inventory_service = InventoryService(db)

    try:
        item = await inventory_service.update_item_status(request, actor=user["user_id"])
        return _item_response(item)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during item status update",
            extra={"item_id": request.item_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to update inventory item status")


@router.post("/blackout/add", response_model=InventoryItem)
async def add_blackout(
    request: AddBlackoutRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: dict = STAFF_DEPENDENCY
) -> JSONResponse:
    """Block an item out for maintenance or owner use."""
    inventory_service = InventoryService(db)

    try:
        item = await inventory_service.add_blackout(request, actor=user["user_id"])
        return _item_response(item)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error adding blackout period",
            extra={"item_id": request.item_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to add blackout period")
