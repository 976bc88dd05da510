"""Referral Guard Service - wiring between the HTTP layer and the engine.

Owns the store, the orchestrator, the background dispatcher and the
metrics collector for the lifetime of the gateway process.
"""

import asyncio
import logging
from typing import Optional
from uuid import uuid4

from referral_guard.api.schemas import (
    FingerprintSightingRequest,
    FingerprintSightingResponse,
    ReferralEventRequest,
    ReferralEventResponse,
)
from referral_guard.common.config.settings import Config
from referral_guard.monitoring.metrics import MetricsCollector
from referral_guard.orchestration import (
    FraudCheckDispatcher,
    FraudCheckOrchestrator,
    FraudCheckParams,
)
from referral_guard.storage import InMemoryReferralStore, PostgresReferralStore, ReferralStore

logger = logging.getLogger(__name__)


class ReferralGuardService:
    """Accepts referral events and fingerprint sightings."""

    def __init__(
        self,
        store: ReferralStore,
        orchestrator: FraudCheckOrchestrator,
        dispatcher: FraudCheckDispatcher,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.metrics = metrics

    @classmethod
    async def create(cls, config: Config) -> "ReferralGuardService":
        """Build the service from configuration.

        Uses PostgreSQL when REFGUARD_DATABASE_URL is set, otherwise an
        in-memory store (development only; production requires a URL).

        Raises:
            StorageError: If the database pool cannot be created
            ConfigurationError: If the thresholds file is invalid
        """
        if config.database_url:
            store: ReferralStore = await PostgresReferralStore.connect(
                config.database_url,
                min_size=config.db_pool_min_size,
                max_size=config.db_pool_max_size,
            )
        else:
            logger.warning("REFGUARD_DATABASE_URL not set, using in-memory referral store")
            store = InMemoryReferralStore()

        metrics = None
        if config.metrics_enabled:
            metrics = MetricsCollector(
                namespace=config.cloudwatch_namespace,
                region=config.aws_region,
            )

        orchestrator = FraudCheckOrchestrator.from_config(config, store, metrics=metrics)
        dispatcher = FraudCheckDispatcher(
            orchestrator,
            max_pending=config.dispatch_max_pending,
            metrics=metrics,
        )
        return cls(store, orchestrator, dispatcher, metrics)

    def submit_referral_event(self, request: ReferralEventRequest) -> ReferralEventResponse:
        """Hand a referral event to the background dispatcher."""
        event_id = f"evt_{uuid4().hex[:12]}"
        params = FraudCheckParams(
            referral_id=request.referral_id,
            referrer_account_id=request.referrer_account_id,
            referred_account_id=request.referred_account_id,
            fingerprint_hash=request.fingerprint_hash,
            ip_address=request.ip_address,
        )
        accepted = self.dispatcher.submit(params)
        return ReferralEventResponse(accepted=accepted, event_id=event_id)

    async def record_fingerprint(
        self,
        request: FingerprintSightingRequest,
    ) -> FingerprintSightingResponse:
        """Record a device sighting.

        Raises:
            StorageError: If the store rejects the write
        """
        fingerprint_id = await self.orchestrator.registry.record_sighting(
            request.fingerprint_hash,
            request.account_id,
            components=request.fingerprint_components,
        )
        logger.info(
            f"Recorded {request.event_type.value} sighting "
            f"fingerprint={fingerprint_id} account={request.account_id}"
        )
        return FingerprintSightingResponse(fingerprint_id=fingerprint_id)

    async def shutdown(self) -> None:
        """Drain background checks, flush metrics, release the store."""
        await self.dispatcher.drain()
        if self.metrics is not None:
            await asyncio.to_thread(self.metrics.shutdown)
        await self.store.close()
