"""
Variant cost endpoints

Manual costs always win over imported ones, and imported costs win over
platform-reported ones.
"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from profit_decisions.models.base import get_db
from profit_decisions.services.cost_service import CostService
from profit_decisions.utils.logger import log

router = APIRouter(prefix="/costs", tags=["costs"])


class ManualCostRequest(BaseModel):
    shop: str
    unit_cost: float


class CostImportRow(BaseModel):
    variant_id: Optional[Union[str, int]] = None
    unit_cost: Optional[Union[float, str]] = None
    sku: Optional[str] = None


class CostImportRequest(BaseModel):
    """Parsed rows from a cost spreadsheet"""
    shop: str
    rows: List[CostImportRow]


@router.get("")
async def list_costs(
    shop: str = Query(..., description="Shop domain"),
    db = Depends(get_db)
):
    try:
        costs = CostService(db).list_costs(shop)
        return {"shop": shop, "count": len(costs), "costs": costs}
    except Exception as e:
        log.error(f"Error listing costs: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{variant_id}")
async def set_manual_cost(
    variant_id: str,
    request: ManualCostRequest,
    db = Depends(get_db)
):
    """Merchant-entered unit cost for one variant"""
    service = CostService(db)
    try:
        service.set_manual_cost(request.shop, variant_id, request.unit_cost)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log.error(f"Error saving cost for {variant_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "shop": request.shop,
        "variant_id": variant_id,
        "unit_cost": service.get_variant_cost(request.shop, variant_id),
        "source": "manual"
    }


@router.post("/import")
async def import_costs(
    request: CostImportRequest,
    db = Depends(get_db)
):
    """
    Bulk import unit costs

    Bad rows are reported back rather than failing the whole import.
    """
    try:
        result = CostService(db).bulk_import_costs(
            request.shop,
            [row.model_dump() for row in request.rows],
        )
        return {"shop": request.shop, **result}
    except Exception as e:
        log.error(f"Error importing costs: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
