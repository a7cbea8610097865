"""
Per-shop settings endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from profit_decisions.models.base import get_db
from profit_decisions.services.shop_settings import ShopSettingsService
from profit_decisions.utils.logger import log

router = APIRouter(prefix="/settings", tags=["settings"])


class ShopSettingsUpdate(BaseModel):
    currency: Optional[str] = None
    assumed_shipping_cost: Optional[float] = None
    min_impact_threshold: Optional[float] = None


@router.get("/{shop}")
async def get_shop_settings(shop: str, db = Depends(get_db)):
    try:
        profile = ShopSettingsService(db).get_profile(shop)
        db.commit()
        return profile.to_dict()
    except Exception as e:
        log.error(f"Error loading settings for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{shop}")
async def update_shop_settings(
    shop: str,
    request: ShopSettingsUpdate,
    db = Depends(get_db)
):
    """
    Update currency, assumed shipping cost or minimum impact

    The minimum impact can be raised but never below the system floor.
    """
    try:
        profile = ShopSettingsService(db).update_settings(
            shop,
            currency=request.currency,
            assumed_shipping_cost=request.assumed_shipping_cost,
            min_impact_threshold=request.min_impact_threshold,
        )
        return profile.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log.error(f"Error updating settings for {shop}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
