from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.uploads.api.routes import create_router
from services.uploads.api.webhook_routes import create_webhook_router
from services.uploads.application.asset_state_machine import AssetStateMachine
from services.uploads.application.cancel_upload import CancelUploadUseCase
from services.uploads.application.create_upload import CreateUploadUseCase
from services.uploads.application.delete_asset import DeleteAssetUseCase
from services.uploads.application.process_webhook import ProcessWebhookUseCase
from services.uploads.application.sync_asset import GetAssetUseCase, SyncAssetUseCase
from services.uploads.application.tus_forwarder import TusForwarder
from services.uploads.config import UploadsConfig, load_config
from services.uploads.infrastructure.assets import (
    SqlAlchemyAssetRepository,
    SqlAlchemySessionRepository,
)
from services.uploads.infrastructure.db import (
    create_engine,
    create_session_factory,
    create_tables,
)
from services.uploads.infrastructure.ids import TokenIdProvider
from services.uploads.infrastructure.provider import (
    StreamProviderClient,
    thumbnail_url_builder,
)
from services.uploads.infrastructure.rate_limit import RedisRateLimiter

logger = logging.getLogger(__name__)


def build_app(config: UploadsConfig | None = None) -> FastAPI:
    cfg = config or load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not cfg.webhook_secret:
        logger.warning(
            "UPLOADS_WEBHOOK_SECRET is not set; unsigned webhooks are %s",
            "accepted" if cfg.webhook_allow_unsigned else "rejected",
        )

    engine = create_engine(cfg.sqlalchemy_dsn)
    orm_session_factory = create_session_factory(engine)
    asset_repository = SqlAlchemyAssetRepository(orm_session_factory)
    session_repository = SqlAlchemySessionRepository(orm_session_factory)

    provider = StreamProviderClient(
        api_base_url=cfg.provider_api_base_url,
        account_id=cfg.provider_account_id,
        api_token=cfg.provider_api_token,
        timeout_seconds=cfg.provider_timeout_seconds,
    )
    rate_limiter = None
    if cfg.rate_limit_enabled:
        rate_limiter = RedisRateLimiter.from_settings(
            host=cfg.redis_host,
            port=cfg.redis_port,
            db=cfg.redis_db,
            max_requests=cfg.rate_limit_max_requests,
            window_seconds=cfg.rate_limit_window_seconds,
        )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await create_tables(engine)
        try:
            yield
        finally:
            await provider.aclose()
            if rate_limiter is not None:
                await rate_limiter.aclose()
            await engine.dispose()

    app = FastAPI(lifespan=lifespan)

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    state_machine = AssetStateMachine(
        repository=asset_repository,
        thumbnail_url_for=thumbnail_url_builder(cfg.provider_playback_base_url),
    )
    create_upload_use_case = CreateUploadUseCase(
        asset_id_provider=TokenIdProvider(
            prefix=cfg.asset_id_prefix, length=cfg.asset_id_length
        ),
        provider=provider,
        repository=asset_repository,
        max_duration_seconds=cfg.max_duration_seconds,
    )
    tus_forwarder = TusForwarder(
        sessions=session_repository,
        provider=provider,
        state_machine=state_machine,
        default_tus_version=cfg.tus_version,
    )
    process_webhook_use_case = ProcessWebhookUseCase(
        state_machine=state_machine,
        max_attempts=cfg.webhook_max_attempts,
        base_delay_seconds=cfg.webhook_retry_base_delay_seconds,
    )

    app.include_router(
        create_router(
            create_upload_use_case,
            tus_forwarder,
            CancelUploadUseCase(
                sessions=session_repository, state_machine=state_machine
            ),
            GetAssetUseCase(asset_repository),
            DeleteAssetUseCase(
                repository=asset_repository,
                provider=provider,
                state_machine=state_machine,
            ),
            SyncAssetUseCase(
                repository=asset_repository,
                provider=provider,
                state_machine=state_machine,
            ),
            tus_version=cfg.tus_version,
            max_upload_bytes=cfg.max_upload_bytes,
            allowed_video_types=cfg.allowed_video_types,
            rate_limiter=rate_limiter,
        )
    )
    app.include_router(
        create_webhook_router(
            process_webhook_use_case,
            secret=cfg.webhook_secret,
            signature_header=cfg.webhook_signature_header,
            allow_unsigned=cfg.webhook_allow_unsigned,
            provider_configured=bool(
                cfg.provider_account_id and cfg.provider_api_token
            ),
        )
    )

    return app


app = build_app()
