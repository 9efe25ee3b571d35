"""FastAPI application: gateway routes, health check and the real-time channel."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import ROLE_ADMIN, ROLE_STUDENT, Principal, limiter, require_roles
from .config import Settings, get_settings
from .connectors import GatewayConnectorBase, get_connector
from .database import close_db, get_db, init_db
from .exceptions import (
    ConcurrentUpdateError,
    FeeAccountNotFoundError,
    GatewayRequestError,
    GatewayTimeoutError,
    InvalidAmountError,
    InvalidSignatureError,
)
from .fees_api import router as fees_router
from .notifications import Notifier
from .reconciliation.api import router as audit_router
from .reconciliation.service import ReconciliationService
from .schemas import (
    CreateOrderBody,
    OrderResponse,
    VerifyPaymentBody,
    VerifyPaymentResponse,
    WebhookAck,
    WebhookEnvelope,
    WebhookPayload,
)
from .services import OrderService, to_minor_units

logger = logging.getLogger(__name__)

# Webhook events that carry a payment to record; everything else is acknowledged
HANDLED_WEBHOOK_EVENTS = ("payment.captured", "payment.authorized")


def get_connector_dep(request: Request) -> GatewayConnectorBase:
    return request.app.state.connector


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


router = APIRouter(prefix="/razorpay", tags=["razorpay"])


@router.post("/create-order", response_model=OrderResponse)
@limiter.limit(get_settings().create_order_rate_limit)
async def create_order(
    request: Request,
    body: CreateOrderBody,
    db: AsyncSession = Depends(get_db),
    connector: GatewayConnectorBase = Depends(get_connector_dep),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(ROLE_STUDENT, ROLE_ADMIN)),
):
    """
    Create a gateway order for a fee account.

    The amount defaults to the account's pending balance. The returned order
    is handed to Razorpay Checkout on the client.
    """
    service = OrderService(db, connector, settings)
    try:
        order = await service.create_order(body.feeId, body.amount)
    except FeeAccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidAmountError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except GatewayTimeoutError:
        raise HTTPException(status_code=504, detail="Payment gateway timed out")
    except GatewayRequestError:
        raise HTTPException(status_code=500, detail="Failed to create order")

    logger.info(f"{principal.subject} created order {order.id} for fee {body.feeId}")
    return {"order": order.to_public_dict()}


@router.post("/verify-payment", response_model=VerifyPaymentResponse)
async def verify_payment(
    body: VerifyPaymentBody,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    connector: GatewayConnectorBase = Depends(get_connector_dep),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(ROLE_STUDENT, ROLE_ADMIN)),
):
    """
    Record a payment the client completed through Razorpay Checkout.

    The checkout signature over ``order_id|payment_id`` must verify. Repeating
    a confirmation is harmless: the second call reports success without
    recording anything.
    """
    amount_minor = to_minor_units(body.amount)
    if amount_minor <= 0:
        raise HTTPException(status_code=400, detail="Amount must be positive")

    service = ReconciliationService(db, connector, settings)
    try:
        outcome = await service.reconcile_client_confirmation(
            fee_id=body.feeId,
            order_id=body.razorpay_order_id,
            payment_id=body.razorpay_payment_id,
            signature=body.razorpay_signature,
            amount_minor=amount_minor,
            method=body.method.value,
            transaction_id=body.transactionId,
        )
    except InvalidSignatureError:
        raise HTTPException(status_code=400, detail="Invalid signature")
    except FeeAccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConcurrentUpdateError:
        raise HTTPException(status_code=409, detail="Fee record changed concurrently, retry")
    except GatewayTimeoutError:
        raise HTTPException(status_code=504, detail="Payment gateway timed out")
    except GatewayRequestError:
        raise HTTPException(status_code=500, detail="Failed to verify payment with gateway")

    if outcome.already_recorded:
        return {"success": True, "message": "Payment already recorded"}

    background_tasks.add_task(notifier.notify, outcome.event)
    return {"success": True, "message": "Payment verified and recorded"}


def webhook_error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


@router.post("/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def razorpay_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
):
    """
    Receive Razorpay webhook deliveries.

    The signature is checked over the raw body; a bad or missing signature is
    the only 400. Signed deliveries that cannot be processed, unknown orders,
    ignored events and repeat deliveries are acknowledged with 200 so the
    gateway stops retrying; transient failures answer 500 so it retries.
    """
    body = await request.body()
    signature = request.headers.get("x-razorpay-signature")

    service = ReconciliationService(db, settings=settings)
    try:
        service.check_webhook_signature(body, signature)
    except InvalidSignatureError:
        return webhook_error(400, "Invalid signature")

    try:
        envelope = WebhookEnvelope.model_validate_json(body)
    except ValidationError as e:
        logger.warning(f"Signed webhook with malformed body acknowledged: {e.error_count()} errors")
        return {"ok": False, "error": "Malformed webhook body"}

    if envelope.event not in HANDLED_WEBHOOK_EVENTS:
        logger.info(f"Ignoring webhook event {envelope.event}")
        return {"ok": True}

    try:
        entity = WebhookPayload.model_validate(envelope.payload or {}).payment.entity
    except ValidationError as e:
        logger.warning(
            f"Signed {envelope.event} webhook with malformed payment acknowledged: {e.error_count()} errors"
        )
        return {"ok": False, "error": "Malformed payment payload"}

    if not entity.order_id:
        logger.warning(f"Webhook {envelope.event} for payment {entity.id} has no order; acknowledged")
        return {"ok": True}

    try:
        outcome = await service.reconcile_webhook(
            order_id=entity.order_id,
            payment_id=entity.id,
            amount_minor=entity.amount,
            method=entity.ledger_method(),
            occurred_at=entity.occurred_at(),
        )
    except FeeAccountNotFoundError:
        logger.warning(f"Webhook {envelope.event} for unknown order {entity.order_id}; acknowledged")
        return {"ok": True}
    except (ConcurrentUpdateError, SQLAlchemyError) as e:
        logger.error(f"Webhook for payment {entity.id} failed: {type(e).__name__}: {e}")
        await db.rollback()
        return webhook_error(500, "Webhook processing failed")

    if outcome.event is not None:
        background_tasks.add_task(notifier.notify, outcome.event)
    return {"ok": True}


def create_app(
    connector: Optional[GatewayConnectorBase] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Build the application with its collaborators.

    Args:
        connector: Gateway connector; chosen by FEE_GATEWAY when omitted.
        notifier: Notification fan-out; built from the environment when omitted.
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db()
        yield
        await close_db()

    app = FastAPI(title="Fee Ledger", lifespan=lifespan)
    app.state.connector = connector or get_connector()
    app.state.notifier = notifier or Notifier()
    app.state.started_at = time.monotonic()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(router)
    app.include_router(audit_router)
    app.include_router(fees_router)

    @app.get("/health")
    async def health(request: Request):
        """Liveness plus the gateway connector's own health check."""
        return {
            "status": "ok",
            "uptime_seconds": round(time.monotonic() - request.app.state.started_at, 3),
            "gateway": request.app.state.connector.health_check(),
        }

    @app.websocket("/ws/fees")
    async def fees_socket(websocket: WebSocket):
        """Real-time ``fee-paid`` channel. Incoming messages are ignored."""
        hub = websocket.app.state.notifier.hub
        await hub.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            await hub.disconnect(websocket)

    return app


app = create_app()
