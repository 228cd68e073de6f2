"""Checkout charge endpoint."""

from fastapi import APIRouter, status

from gateway_orchestrator.api.dependencies import Checkout
from gateway_orchestrator.api.schemas import ChargeCreate, ChargeResponse, TransactionResponse

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=ChargeResponse, status_code=status.HTTP_201_CREATED)
async def create_charge(body: ChargeCreate, checkout: Checkout) -> ChargeResponse:
    """Charge through the best available gateway.

    Returns 503 "payment temporarily unavailable" when no gateway can take
    the payment. A provider failure is not an HTTP error: the transaction is
    returned with status failed and an errorCode.
    """
    result = await checkout.charge(
        body.amount,
        body.currency,
        body.country,
        body.provider,
        payment_method=body.payment_method,
        customer_email=body.customer_email,
        customer_name=body.customer_name,
        description=body.description,
        metadata=body.metadata,
    )
    transaction = TransactionResponse.model_validate(result.transaction)
    return ChargeResponse(
        **transaction.model_dump(),
        provider=result.provider.value,
        redirect_url=result.redirect_url,
    )
