"""
Live-scan orchestrator.

Visits the page list through a small pool of isolated browsing
contexts ("slots").  Each visited page runs the page collector, which
submits its evidence to the server and then signals completion with a
``{"type": "scan_complete", "scanId": ...}`` message.  The
orchestrator keeps one future per in-flight page; a page that does
not signal within its timeout is recorded as ``timeout``.

When some, but fewer than half, of the pages time out, those pages are
retried once, one at a time, with a longer timeout.  Finally the
reachable pages are sent to the finalize endpoint, which parses their
HTML and aggregates the submitted evidence.
"""

from __future__ import annotations

import asyncio
import collections
import dataclasses
from collections.abc import Callable
from typing import Any, Protocol

import aiohttp

from consent_audit import config
from consent_audit.browser import collector
from consent_audit.models import live, services, site
from consent_audit.utils import errors, logger
from consent_audit.utils import url as url_mod

log = logger.create_logger("Orchestrator")

ProgressCallback = Callable[[int, int, str], None]
PageStatusCallback = Callable[[str, live.PageStatus, str], None]
Deliver = Callable[[Any], None]


# ============================================================================
# Collaborators
# ============================================================================


class ScanSlot(Protocol):
    """One isolated browsing context."""

    async def navigate(self, url: str) -> None: ...

    async def close(self) -> None: ...


class SlotFactory(Protocol):
    """Opens slots whose page collectors report through *deliver*."""

    async def open_slot(self, index: int, deliver: Deliver) -> ScanSlot: ...

    async def close(self) -> None: ...


class FinalizeClient(Protocol):
    async def finalize(self, pages: list[site.PageDescriptor], token: str) -> services.Envelope[live.LiveEvidence]: ...


class HttpFinalizeClient:
    """Posts ``{pages, token}`` to the server's finalize endpoint."""

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._url = base_url.rstrip("/") + "/api/scan/finalize"
        self._session = session
        self._timeout = timeout

    async def _post(self, session: aiohttp.ClientSession, payload: dict[str, Any]) -> services.Envelope[live.LiveEvidence]:
        async with session.post(self._url, json=payload, timeout=aiohttp.ClientTimeout(total=self._timeout)) as response:
            body = await response.json(content_type=None)
            if response.status >= 400:
                message = body.get("error") if isinstance(body, dict) else None
                return services.Envelope.fail(message or f"HTTP error: {response.status}", response.status)
            return services.Envelope.ok(live.LiveEvidence.model_validate(body))

    async def finalize(self, pages: list[site.PageDescriptor], token: str) -> services.Envelope[live.LiveEvidence]:
        payload = {"pages": [page.model_dump(mode="json", by_alias=True) for page in pages], "token": token}
        try:
            if self._session is not None:
                return await self._post(self._session, payload)
            async with aiohttp.ClientSession() as session:
                return await self._post(session, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            message = errors.get_error_message(exc)
            log.error("Finalize request failed", {"error": message})
            return services.Envelope.fail(message, 502)


# ============================================================================
# Orchestrator
# ============================================================================


@dataclasses.dataclass(frozen=True)
class OrchestratorConfig:
    concurrency: int = 3
    page_timeout: float = 20.0
    retry_timeout: float = 30.0
    stagger: float = 0.2
    retry_threshold: float = 0.5

    @classmethod
    def from_settings(cls, settings: config.AuditSettings) -> OrchestratorConfig:
        return cls(
            concurrency=settings.concurrency,
            page_timeout=settings.page_timeout_seconds,
            retry_timeout=settings.retry_timeout_seconds,
            stagger=settings.stagger_ms / 1000,
        )


@dataclasses.dataclass
class LiveScanOutcome:
    page_statuses: dict[str, live.PageStatus] = dataclasses.field(default_factory=dict)
    retried: bool = False
    timed_out: list[str] = dataclasses.field(default_factory=list)
    evidence: live.LiveEvidence | None = None
    error: str | None = None


def is_completion_message(message: Any) -> bool:
    return (
        isinstance(message, dict)
        and message.get("type") == "scan_complete"
        and isinstance(message.get("scanId"), str)
        and bool(message["scanId"])
    )


class LiveScanOrchestrator:
    """Runs one live scan over *pages*.

    All state is owned by the instance; a run is not reusable.
    """

    def __init__(
        self,
        pages: list[site.PageDescriptor],
        token: str,
        slot_factory: SlotFactory,
        finalize_client: FinalizeClient,
        scan_config: OrchestratorConfig | None = None,
        on_progress: ProgressCallback | None = None,
        on_page_status: PageStatusCallback | None = None,
    ) -> None:
        self._pages = list(pages)
        self._token = token
        self._factory = slot_factory
        self._finalize = finalize_client
        self._config = scan_config or OrchestratorConfig()
        self._on_progress = on_progress
        self._on_page_status = on_page_status
        self._pending: dict[str, asyncio.Future[None]] = {}
        self._statuses: dict[str, live.PageStatus] = {}

    # ------------------------------------------------------------------
    # Completion channel
    # ------------------------------------------------------------------

    def deliver(self, message: Any) -> None:
        """Accept a collector message; anything malformed or unexpected is dropped."""
        if not is_completion_message(message):
            return
        future = self._pending.get(message["scanId"])
        if future is not None and not future.done():
            future.set_result(None)

    def navigation_url(self, page: site.PageDescriptor) -> str:
        return url_mod.with_query_params(
            page.url,
            {collector.TOKEN_PARAM: self._token, collector.SCAN_ID_PARAM: page.scan_id},
        )

    async def _visit(self, slot: ScanSlot, page: site.PageDescriptor, timeout: float) -> live.PageStatus:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending[page.scan_id] = future
        try:
            async with asyncio.timeout(timeout):
                await slot.navigate(self.navigation_url(page))
                await future
            return "ok"
        except TimeoutError:
            log.warn("Page timed out", {"page": page.scan_id, "timeoutSeconds": timeout})
            return "timeout"
        except Exception as exc:
            log.warn("Navigation failed", {"page": page.scan_id, "error": errors.get_error_message(exc)})
            return "timeout"
        finally:
            self._pending.pop(page.scan_id, None)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _record(self, page: site.PageDescriptor, status: live.PageStatus, completed: int, total: int) -> None:
        self._statuses[page.scan_id] = status
        if self._on_progress:
            self._on_progress(completed, total, page.label)
        if self._on_page_status:
            self._on_page_status(page.scan_id, status, page.label)

    async def _run_pass(self, pages: list[site.PageDescriptor], concurrency: int, timeout: float) -> list[str]:
        """Visit *pages* FIFO across *concurrency* slots; return the ids that timed out."""
        queue = collections.deque(pages)
        total = len(pages)
        completed = 0
        timed_out: list[str] = []

        async def worker(index: int) -> None:
            nonlocal completed
            await asyncio.sleep(index * self._config.stagger)
            if not queue:
                return
            try:
                slot = await self._factory.open_slot(index, self.deliver)
            except Exception as exc:
                log.error("Could not open browsing slot", {"slot": index, "error": errors.get_error_message(exc)})
                return
            try:
                while queue:
                    page = queue.popleft()
                    status = await self._visit(slot, page, timeout)
                    completed += 1
                    if status == "timeout":
                        timed_out.append(page.scan_id)
                    self._record(page, status, completed, total)
            finally:
                await slot.close()

        await asyncio.gather(*(worker(index) for index in range(min(concurrency, total))))

        # Pages no slot could take (every slot failed to open).
        while queue:
            page = queue.popleft()
            completed += 1
            timed_out.append(page.scan_id)
            self._record(page, "timeout", completed, total)
        return timed_out

    def _should_retry(self, timed_out: int, total: int) -> bool:
        return 0 < timed_out < self._config.retry_threshold * total

    async def run(self) -> LiveScanOutcome:
        outcome = LiveScanOutcome()
        total = len(self._pages)
        log.start_timer("live-scan")
        log.info("Live scan starting", {"pages": total, "concurrency": self._config.concurrency})

        try:
            timed_out = await self._run_pass(self._pages, self._config.concurrency, self._config.page_timeout)
            if self._should_retry(len(timed_out), total):
                outcome.retried = True
                log.info("Retrying timed-out pages", {"pages": len(timed_out)})
                retry_pages = [page for page in self._pages if page.scan_id in timed_out]
                timed_out = await self._run_pass(retry_pages, 1, self._config.retry_timeout)
        finally:
            await self._factory.close()

        outcome.page_statuses = {page.scan_id: self._statuses.get(page.scan_id, "timeout") for page in self._pages}
        outcome.timed_out = timed_out
        log.end_timer("live-scan", "Page visits complete")

        reachable = [page for page in self._pages if outcome.page_statuses[page.scan_id] == "ok"]
        envelope = await self._finalize.finalize(reachable, self._token)
        if not envelope.success or envelope.data is None:
            outcome.error = envelope.error or "Finalize failed"
            log.error("Live scan completed with errors", {"error": outcome.error})
            return outcome

        evidence = envelope.data
        evidence.page_statuses = {**evidence.page_statuses, **outcome.page_statuses}
        outcome.evidence = evidence
        log.success(
            "Live scan complete",
            {"reachable": len(reachable), "timedOut": len(timed_out), "retried": outcome.retried},
        )
        return outcome
