"""Push dispatcher - one sweep that tells every registered device to refresh.

Each tick treats every pass as updated: timestamps are bumped first so the
device's next poll reports its passes, then one background push per
(push token, pass type) is fanned out. Failed pushes are not retried within
the tick; the next tick sends to the same devices again.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import GatewayDeliveryError, SigningMaterialMissing
from .push_sender import ApnsTokenSigner, DeliveryOutcome, DeliveryResult, PushGateway
from .registration_store import PushTarget, RegistrationStore

logger = logging.getLogger(__name__)

# Concurrent in-flight pushes; HTTP/2 multiplexes these over one connection
MAX_CONCURRENT_PUSHES = 100


@dataclass
class DispatchReport:
    """Aggregate result of one tick."""
    targets: int = 0
    delivered: int = 0
    failed: int = 0
    not_attempted: int = 0
    passes_touched: int = 0
    aborted: Optional[str] = None
    overlapped: bool = False
    results: List[DeliveryResult] = field(default_factory=list)


class PushDispatcher:
    """Runs push sweeps against the registration store."""

    def __init__(
        self,
        store: RegistrationStore,
        gateway: PushGateway,
        signer: ApnsTokenSigner,
        max_concurrency: int = MAX_CONCURRENT_PUSHES,
        deadline_seconds: Optional[float] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._signer = signer
        self._max_concurrency = max(1, max_concurrency)
        self._deadline_seconds = deadline_seconds
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_tick(self) -> DispatchReport:
        """Run one sweep; returns immediately if a sweep is already running."""
        if self._lock.locked():
            logger.warning("Push sweep still running, skipping this tick")
            return DispatchReport(overlapped=True)
        async with self._lock:
            return await self._sweep()

    async def _sweep(self) -> DispatchReport:
        targets = await self._store.list_push_targets()
        if not targets:
            logger.debug("No registered devices for push notification")
            return DispatchReport()

        report = DispatchReport(targets=len(targets))
        report.passes_touched = await self._store.touch_all_passes()

        try:
            credential = self._signer.sign()
        except SigningMaterialMissing as e:
            logger.error(f"Skipping push sweep: {e}")
            report.aborted = str(e)
            return report

        logger.info(f"Sending push notifications to {len(targets)} device(s)")
        report.results = await self._fan_out(targets, credential)

        for result in report.results:
            if result.outcome == DeliveryOutcome.DELIVERED:
                report.delivered += 1
            elif result.outcome == DeliveryOutcome.NOT_ATTEMPTED:
                report.not_attempted += 1
            else:
                report.failed += 1

        logger.info(
            f"Push notifications sent: {report.delivered} success, {report.failed} failed"
            + (f", {report.not_attempted} left for next tick" if report.not_attempted else "")
        )
        return report

    async def _fan_out(self, targets: List[PushTarget], credential: str) -> List[DeliveryResult]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def deliver(target: PushTarget) -> DeliveryResult:
            async with semaphore:
                try:
                    return await self._gateway.send(target.push_token, target.pass_type_id, credential)
                except GatewayDeliveryError as e:
                    logger.warning(str(e))
                    return DeliveryResult(
                        target.push_token, target.pass_type_id,
                        DeliveryOutcome.TRANSPORT_ERROR, reason=str(e),
                    )

        tasks = [asyncio.create_task(deliver(target)) for target in targets]
        done, pending = await asyncio.wait(tasks, timeout=self._deadline_seconds)
        if pending:
            logger.warning(f"Push sweep deadline reached with {len(pending)} push(es) outstanding")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        results = []
        for target, task in zip(targets, tasks):
            if task in pending:
                results.append(DeliveryResult(target.push_token, target.pass_type_id, DeliveryOutcome.NOT_ATTEMPTED))
                continue
            try:
                results.append(task.result())
            except Exception as e:
                logger.error(f"Push to {target.push_token[:16]}... raised: {e}")
                results.append(DeliveryResult(
                    target.push_token, target.pass_type_id,
                    DeliveryOutcome.TRANSPORT_ERROR, reason=str(e),
                ))
        return results
