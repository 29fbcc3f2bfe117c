"""
Streaming audit run.

Runs static analysis, builds the page list, drives the live scan and
streams progress to the client as Server-Sent Events:

- ``progress``: step, message and overall percentage
- ``static``: the static analysis result
- ``pages``: the page list about to be scanned
- ``pageStatus``: one per page as it completes or times out
- ``complete``: the stored audit result
- ``error``: anything that stopped the run
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncGenerator

from consent_audit import config
from consent_audit.browser import session as browser_session
from consent_audit.models import live
from consent_audit.pipeline import orchestrator, sse_helpers
from consent_audit.pipeline.audit_run import AuditRun
from consent_audit.utils import cache, errors, logger
from consent_audit.utils import url as url_mod

log = logger.create_logger("AuditStream")

# Outer safety net for one streamed run.
STREAM_TIMEOUT_SECONDS = 900


async def _drain(task: asyncio.Task[orchestrator.LiveScanOutcome], queue: asyncio.Queue[str]) -> AsyncGenerator[str, None]:
    """Yield queued events until *task* finishes, then whatever is left."""
    while not task.done():
        getter = asyncio.ensure_future(queue.get())
        done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
        if getter in done:
            yield getter.result()
        else:
            getter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await getter
    while not queue.empty():
        yield queue.get_nowait()


async def audit_stream(
    run: AuditRun,
    settings: config.AuditSettings | None = None,
    *,
    slot_factory: orchestrator.SlotFactory | None = None,
    finalize_client: orchestrator.FinalizeClient | None = None,
    force_static: bool = False,
    clear_cache: bool = False,
) -> AsyncGenerator[str, None]:
    """Run a full audit, yielding SSE event strings.

    Args:
        force_static: Ignore the cached static result.
        clear_cache: When ``True``, delete all cached static and audit
            results before starting.
    """
    if clear_cache:
        cache.clear_all()

    settings = settings or config.get_settings()
    base_url = settings.public_base_url.rstrip("/")
    queue: asyncio.Queue[str] = asyncio.Queue()
    scan_task: asyncio.Task[orchestrator.LiveScanOutcome] | None = None

    logger.reset_run_log()
    log.section("Consent audit")
    log.start_timer("total-audit")

    try:
        async with asyncio.timeout(STREAM_TIMEOUT_SECONDS):
            yield sse_helpers.format_progress_event("static", "Analysing installed components...", 5)
            static_envelope = await asyncio.to_thread(run.run_static, force_static)
            if not static_envelope.success or static_envelope.data is None:
                yield sse_helpers.format_sse_event("error", {"error": static_envelope.error or "Static analysis failed"})
                return
            static_result = static_envelope.data
            logger.open_run_log_file(url_mod.extract_host(static_result.site_url))
            yield sse_helpers.format_sse_event("static", sse_helpers.to_jsonable(static_result))

            pages_envelope = run.page_list()
            if not pages_envelope.success or pages_envelope.data is None:
                yield sse_helpers.format_sse_event("error", {"error": pages_envelope.error or "No pages to scan"})
                return
            pages = pages_envelope.data
            yield sse_helpers.format_sse_event("pages", {"pages": sse_helpers.to_jsonable(pages)})
            yield sse_helpers.format_progress_event("live", f"Scanning {len(pages)} pages...", 20)

            token = run.issue_token()

            def on_progress(completed: int, total: int, label: str) -> None:
                queue.put_nowait(
                    sse_helpers.format_progress_event(
                        "live",
                        f"Scanned {completed}/{total}: {label}",
                        sse_helpers.scan_progress(completed, total),
                    )
                )

            def on_page_status(page_id: str, status: live.PageStatus, label: str) -> None:
                queue.put_nowait(sse_helpers.format_page_status_event(page_id, status, label))

            scanner = orchestrator.LiveScanOrchestrator(
                pages,
                token.value,
                slot_factory
                or browser_session.PlaywrightSlotFactory(
                    f"{base_url}/api/scan/evidence",
                    headless=settings.headless,
                ),
                finalize_client or orchestrator.HttpFinalizeClient(base_url),
                orchestrator.OrchestratorConfig.from_settings(settings),
                on_progress=on_progress,
                on_page_status=on_page_status,
            )
            scan_task = asyncio.create_task(scanner.run())
            async for event in _drain(scan_task, queue):
                yield event
            outcome = scan_task.result()

            yield sse_helpers.format_progress_event("merge", "Merging evidence...", 90)
            result_envelope = run.apply_outcome(outcome)
            if not result_envelope.success or result_envelope.data is None:
                yield sse_helpers.format_sse_event("error", {"error": result_envelope.error or "No results stored"})
                return

            total_time = log.end_timer("total-audit", "Audit complete")
            if outcome.error:
                log.warn("Audit completed with errors", {"error": outcome.error})
            else:
                log.success("Audit complete", {"totalTime": f"{(total_time / 1000):.2f}s"})
            yield sse_helpers.format_sse_event(
                "complete",
                {
                    "result": sse_helpers.to_jsonable(result_envelope.data),
                    "retried": outcome.retried,
                    "error": outcome.error,
                    "debugLog": logger.get_run_log(),
                },
            )

    except TimeoutError:
        log.error("Audit timed out", {"timeoutSeconds": STREAM_TIMEOUT_SECONDS})
        yield sse_helpers.format_sse_event(
            "error",
            {"error": f"Audit timed out after {STREAM_TIMEOUT_SECONDS // 60} minutes"},
        )
    except Exception as error:
        log.error("Audit failed with exception", {"error": errors.get_error_message(error)})
        yield sse_helpers.format_sse_event("error", {"error": errors.get_error_message(error)})
    finally:
        if scan_task is not None and not scan_task.done():
            scan_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await scan_task
        logger.close_run_log_file()
