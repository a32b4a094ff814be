"""
Shipping API Endpoints.

Shipping estimates for a cart before checkout.
"""

from fastapi import APIRouter, Depends

from fulfillment_engine.app.api.deps import get_shipping_calculator
from fulfillment_engine.app.domain.shipping.calculator import ShippingCalculator
from fulfillment_engine.app.schemas.shipping import ShippingCalculationRequest, ShippingEstimate

router = APIRouter(prefix="/shipping", tags=["Shipping"])


@router.post("/calculate", response_model=ShippingEstimate)
async def calculate_shipping(
    request: ShippingCalculationRequest,
    calculator: ShippingCalculator = Depends(get_shipping_calculator)
):
    """
    Price delivery for a cart.
    
    Returns 400 ERR_ZONE_NOT_FOUND / ERR_RATE_NOT_FOUND when the destination
    or a hub group cannot be priced.
    """
    return await calculator.calculate(request)
