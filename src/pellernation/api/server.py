"""aiohttp application factory and server lifecycle."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from aiohttp import web

from pellernation.api import handlers
from pellernation.api.handlers import GATEWAY_KEY, RECONCILER_KEY, STORE_KEY, UPLOAD_DIR_KEY
from pellernation.config.settings import AppConfig, get_config
from pellernation.db.pool import close_pool, create_pool
from pellernation.db.schema.migrate import migrate
from pellernation.errors import AppError
from pellernation.members.store import MemberStore
from pellernation.payments.gateway import PaystackClient
from pellernation.payments.reconciler import PaymentReconciler

logger = logging.getLogger(__name__)


def cors_middleware(origin: str):
    """Allow the configured browser origin, with credentials."""
    cors_headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            return web.Response(
                status=204,
                headers={
                    **cors_headers,
                    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
                    "Access-Control-Allow-Headers": "Content-Type, Authorization",
                },
            )
        try:
            response = await handler(request)
        except web.HTTPException as e:
            e.headers.update(cors_headers)
            raise
        response.headers.update(cors_headers)
        return response

    return middleware


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map AppError subclasses to JSON responses; hide everything else."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except AppError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        return web.json_response(e.to_dict(), status=e.status)
    except Exception as e:
        logger.exception(f"Unhandled error in {request.method} {request.path}: {e}")
        return web.json_response({"error": "Server error"}, status=500)


def create_app(
    store: MemberStore,
    gateway: Optional[PaystackClient] = None,
    reconciler: Optional[PaymentReconciler] = None,
    config: Optional[AppConfig] = None,
) -> web.Application:
    """Create the aiohttp application with all routes.

    Args:
        store: Member store over the server-owned pool
        gateway: Paystack client (built from config when omitted)
        reconciler: Payment reconciler (built from store and gateway when omitted)
        config: Application config (defaults to get_config())

    Returns:
        Configured aiohttp Application
    """
    config = config or get_config()
    gateway = gateway or PaystackClient()
    if reconciler is None:
        reconciler = PaymentReconciler(
            store=store,
            client=gateway,
            webhook_secret=config.paystack_secret_key.get_secret_value(),
        )

    upload_dir = Path(config.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    app = web.Application(
        middlewares=[cors_middleware(config.cors_origin), error_middleware],
        client_max_size=config.max_upload_mb * 1024 * 1024,
    )
    app[STORE_KEY] = store
    app[GATEWAY_KEY] = gateway
    app[RECONCILER_KEY] = reconciler
    app[UPLOAD_DIR_KEY] = upload_dir

    app.router.add_post("/submit-form", handlers.submit_form)
    app.router.add_post("/generate-payment-link", handlers.generate_payment_link)
    app.router.add_post("/verify-payment", handlers.verify_payment)
    app.router.add_post("/webhook", handlers.webhook)
    app.router.add_get("/member", handlers.get_member)
    app.router.add_get("/health", handlers.health)
    app.router.add_static("/uploads", upload_dir)

    return app


async def run_server(
    shutdown_event: Optional[asyncio.Event] = None,
    apply_migrations: bool = False,
) -> None:
    """Open the pool, serve HTTP until shutdown, then close the pool.

    Args:
        shutdown_event: Event that stops the server when set
        apply_migrations: Run pending schema migrations before serving
    """
    config = get_config()
    pool = await create_pool(config)
    runner: Optional[web.AppRunner] = None
    try:
        if apply_migrations:
            applied = await migrate(pool)
            logger.info(f"Applied {applied} pending migration(s)")

        app = create_app(MemberStore(pool), config=config)
        runner = web.AppRunner(app)
        await runner.setup()

        site = web.TCPSite(runner, config.server_host, config.server_port)
        await site.start()

        logger.info(f"Server running on http://{config.server_host}:{config.server_port}")

        if shutdown_event:
            await shutdown_event.wait()
        else:
            await asyncio.Event().wait()

        logger.info("Shutting down server...")
    finally:
        if runner is not None:
            await runner.cleanup()
        await close_pool(pool)
