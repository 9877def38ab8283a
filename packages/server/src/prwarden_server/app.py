"""FastAPI webhook endpoint and process-wide wiring.

The endpoint verifies the signature over the raw body before parsing it,
drops redelivered events (a delivery whose dispatch errored is forgotten so
GitHub can redeliver it), and runs the router in Starlette's worker
threadpool because PyGithub and the AI SDKs block.
"""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from prwarden_core.config import validate_server_config
from prwarden_core.gh.app import GitHubApp
from prwarden_core.providers.registry import get_reviewer
from prwarden_core.signature import has_signature_prefix, verify_signature
from prwarden_server.router import EventRouter
from prwarden_store.base import BaseStore
from prwarden_store.ledger import TokenLedger
from prwarden_store.sqlite import SQLiteStore

logger = logging.getLogger(__name__)


def build_router(config: dict, store: BaseStore | None = None) -> EventRouter:
    """Construct every collaborator once from configuration and inject them.

    Raises ConfigError if a required credential is missing.
    """
    validate_server_config(config)
    store = store or SQLiteStore(db_path=config["db_path"])
    return EventRouter(
        store=store,
        github_app=GitHubApp(
            config["github_app_id"],
            config["github_private_key"],
            timeout=config["github_timeout"],
        ),
        reviewer=get_reviewer(config),
        ledger=TokenLedger(store, limit=config["token_limit_per_24h"]),
        config=config,
    )


def create_app(
    router: EventRouter,
    webhook_secret: str,
    webhook_path: str = "/api/webhook/github",
) -> FastAPI:
    app = FastAPI(title="prwarden", docs_url=None, redoc_url=None)
    secret = webhook_secret.strip()

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.post(webhook_path)
    async def github_webhook(request: Request):
        signature = request.headers.get("x-hub-signature-256")
        if not has_signature_prefix(signature):
            return JSONResponse({"error": "Missing signature"}, status_code=400)

        try:
            body = await request.body()
            try:
                payload = json.loads(body)
            except ValueError:
                return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)
            if not isinstance(payload, dict):
                return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)

            if not verify_signature(body, signature, secret):
                logger.warning("Rejected webhook with invalid signature")
                return JSONResponse({"error": "Invalid signature"}, status_code=401)

            event_type = request.headers.get("x-github-event")
            delivery_id = request.headers.get("x-github-delivery")
            if delivery_id and not await run_in_threadpool(router.store.record_delivery, delivery_id):
                logger.info("Delivery %s already processed; ignoring", delivery_id)
                return {"status": "ignored", "message": "Duplicate delivery"}

            result = await run_in_threadpool(router.dispatch, event_type, payload)
            if delivery_id and result.status == "error":
                await run_in_threadpool(router.store.forget_delivery, delivery_id)
            return result.to_dict()
        except Exception as e:
            logger.exception("Unhandled error processing webhook")
            return JSONResponse({"error": "Internal server error", "message": str(e)}, status_code=500)

    return app
