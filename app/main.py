import logging
from contextlib import asynccontextmanager
from typing import Optional

import stripe
from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool

from app import stripe_service
from app.config import get_settings
from app.database import Database
from app.errors import register_error_handlers, validation_error
from app.limits import limiter, rate_limit_exceeded_handler
from app.routes import auth, orders, products, users
from app.schemas import envelope
from app.services.orders import handle_payment_event

logger = logging.getLogger(__name__)

API_PREFIX = "/v1/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.db = Database(settings.database_url)
    app.state.db.create_all()
    logger.info("Database ready")
    try:
        yield
    finally:
        app.state.db.dispose()
        logger.info("Database connections closed")


app = FastAPI(title="E-commerce API", lifespan=lifespan)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

api = APIRouter(prefix=API_PREFIX)


@api.get("/")
def read_root():
    return envelope("Welcome to the e-commerce API")


# Reads the body untouched: the signature covers the exact bytes Stripe sent
@api.post("/order/checkout/webhook")
@limiter.exempt
async def stripe_webhook(request: Request, stripe_signature: Optional[str] = Header(None)):
    payload = await request.body()

    if not stripe_signature:
        raise validation_error("Invalid signature")
    try:
        event = stripe_service.construct_event(payload, stripe_signature)
    except ValueError:
        raise validation_error("Invalid payload")
    except stripe.SignatureVerificationError:
        logger.warning("Rejected webhook with invalid signature")
        raise validation_error("Invalid signature")

    db = request.app.state.db.session()
    try:
        await run_in_threadpool(handle_payment_event, db, event)
    finally:
        db.close()

    return envelope("Webhook received")


api.include_router(auth.router)
api.include_router(users.router)
api.include_router(products.categories)
api.include_router(products.router)
api.include_router(orders.router)

app.include_router(api)
