import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from storefront.cloudinary_client import CloudinaryStorage
from storefront.config import Settings
from storefront.database import create_db_engine, create_session_factory, init_database
from storefront.errors import register_exception_handlers
from storefront.razorpay_client import RazorpayGateway
from storefront.utils.email import Mailer

from storefront.routes import categories, coupons, health, orders, products, users

API_PREFIX = "/api/v1"

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application. Run with
    ``uvicorn storefront.main:create_app --factory`` or ``python -m storefront.main``.
    """
    settings = settings or Settings.from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(title="Storefront API", version="1.0.0")

    engine = create_db_engine(settings)
    init_database(engine)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.storage = CloudinaryStorage(settings)
    app.state.mailer = Mailer(settings)
    app.state.payment_gateway = RazorpayGateway(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s %s %s %.1fms",
            request.client.host if request.client else "-",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    register_exception_handlers(app)

    # ── Health ─────────────────────────────────────────────────────────
    app.include_router(health.router)

    # ── API ────────────────────────────────────────────────────────────
    app.include_router(users.router,      prefix=API_PREFIX)
    app.include_router(categories.router, prefix=API_PREFIX)
    app.include_router(products.router,   prefix=API_PREFIX)
    app.include_router(coupons.router,    prefix=API_PREFIX)
    app.include_router(orders.router,     prefix=API_PREFIX)

    logger.info("Storefront API ready | port=%s", settings.port)
    return app


if __name__ == "__main__":
    import uvicorn

    app_settings = Settings.from_env()
    uvicorn.run(create_app(app_settings), host="0.0.0.0", port=app_settings.port)
