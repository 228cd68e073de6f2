"""Provider webhook endpoint."""

from fastapi import APIRouter, Request

from gateway_orchestrator.api.dependencies import Adapters, DbSession, Webhooks
from gateway_orchestrator.api.schemas import WebhookResponse
from gateway_orchestrator.types import Provider

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{provider}", response_model=WebhookResponse)
async def receive_webhook(
    provider: str,
    request: Request,
    db: DbSession,
    adapters: Adapters,
    processor: Webhooks,
) -> WebhookResponse:
    """Verify and apply a provider webhook.

    Duplicate deliveries and unrecognised event types return 200; an outcome
    contradicting the stored one returns 409.
    """
    body = await request.body()
    parsed = Provider.parse(provider)
    adapter = adapters.get(parsed) if parsed is not None else None
    signature = request.headers.get(adapter.signature_header) if adapter is not None else None

    try:
        result = await processor.handle(provider, body, signature)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return WebhookResponse(
        provider=result.provider.value,
        result=result.result,
        transaction_id=result.transaction.transaction_id if result.transaction else None,
        status=result.transaction.status.value if result.transaction else None,
    )
