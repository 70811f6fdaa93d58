"""Construction and teardown of the process-wide service graph.

Clients that hold connections (database engine, Redis, HTTP) are created
here once at start-up and handed to the services that need them; nothing in
the service layer reaches for a global handle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from replied.core.settings import Settings
from replied.db.session import create_db_engine, create_session_factory, create_tables
from replied.repositories.record_store import RecordStore, SqlRecordStore
from replied.services.background import BackgroundTaskRunner
from replied.services.content_guard import ContentGuard
from replied.services.crypto import CryptoVault, build_vault
from replied.services.identity import IdentityProvider, build_identity_provider
from replied.services.lifecycle import MessageLifecycle
from replied.services.notifications import NotificationDispatcher, build_dispatcher
from replied.services.rate_limit import AdmissionLimiter, build_limiter
from replied.services.submission import SubmissionPipeline
from replied.services.threads import ThreadIntegrityVerifier

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every long-lived collaborator of the request handlers."""

    settings: Settings
    engine: Engine | None
    store: RecordStore
    vault: CryptoVault
    limiter: AdmissionLimiter
    identity: IdentityProvider
    runner: BackgroundTaskRunner
    dispatcher: NotificationDispatcher
    pipeline: SubmissionPipeline
    lifecycle: MessageLifecycle

    async def close(self) -> None:
        """Release connections in reverse order of construction."""
        await self.runner.shutdown()
        await self.dispatcher.close()
        await self.identity.close()
        self.limiter.close()
        if self.engine is not None:
            self.engine.dispose()


def assemble(
    config: Settings,
    *,
    store: RecordStore,
    vault: CryptoVault,
    limiter: AdmissionLimiter,
    identity: IdentityProvider,
    runner: BackgroundTaskRunner,
    dispatcher: NotificationDispatcher,
    engine: Engine | None = None,
) -> ServiceContainer:
    """Wire the pipeline and lifecycle services from their collaborators."""
    pipeline = SubmissionPipeline(
        store=store,
        vault=vault,
        guard=ContentGuard(config.extra_banned_terms),
        limiter=limiter,
        identity=identity,
        threads=ThreadIntegrityVerifier(store),
        dispatcher=dispatcher,
        timeout_seconds=config.submission_timeout_seconds,
        reject_on_seal_failure=config.reject_on_seal_failure,
    )
    return ServiceContainer(
        settings=config,
        engine=engine,
        store=store,
        vault=vault,
        limiter=limiter,
        identity=identity,
        runner=runner,
        dispatcher=dispatcher,
        pipeline=pipeline,
        lifecycle=MessageLifecycle(store, vault),
    )


def build_container(config: Settings) -> ServiceContainer:
    """Create every service from settings.

    Raises:
        ConfigurationError: If the encryption key is missing or malformed.
    """
    vault = build_vault(config)
    engine = create_db_engine(config.database_url, echo=config.sql_debug)
    create_tables(engine)
    runner = BackgroundTaskRunner()
    logger.info("Replied services initialised")
    return assemble(
        config,
        store=SqlRecordStore(create_session_factory(engine)),
        vault=vault,
        limiter=build_limiter(config),
        identity=build_identity_provider(config),
        runner=runner,
        dispatcher=build_dispatcher(config, runner),
        engine=engine,
    )
