import asyncio
import json
import time
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from journey import JourneyState, Session, build_journey, run_journey
from journey_config import JourneyConfig
from locator import ResolutionError
from report import Reporter, build_element_inventory, sanitize_for_filename


def attempt_label(engine: str, attempt: int) -> str:
    return engine if attempt == 1 else f"{engine}_retry{attempt - 1}"


def summarize(session: Session, engine: str, attempt: int, duration_ms: int) -> dict:
    reporter = session.reporter
    failed = reporter.failed_step
    evidence = reporter.evidence
    passed = session.state is JourneyState.VERIFIED
    return {
        "name": f"Unauthenticated journey [{engine}]",
        "browser": engine,
        "attempt": attempt,
        "status": "passed" if passed else "failed",
        "state": session.state.value,
        "locale": session.locale,
        "url": session.url,
        "error": "" if passed else (failed.detail if failed else str(session.error or "")),
        "failed_step": failed.name if failed else "",
        "target": failed.target if failed else None,
        "attempted": failed.attempted if failed else [],
        "screenshot": evidence[-1] if evidence else "",
        "duration_ms": duration_ms,
        "steps": [o.to_dict() for o in reporter.outcomes],
    }


async def run_attempt(p, engine: str, config: JourneyConfig, run_dir: Path, attempt: int) -> dict:
    label = attempt_label(engine, attempt)
    evidence_dir = run_dir / "evidence" if config.capture_evidence else None
    reporter = Reporter(label, evidence_dir, verbose=config.verbose, screenshot_delay_ms=config.screenshot_delay_ms)
    session = Session(page=None, config=config, reporter=reporter, viewport=dict(config.viewport))
    started = time.monotonic()
    browser = None

    try:
        browser = await getattr(p, engine).launch(headless=config.headless)
        context_args = {"viewport": config.viewport, "locale": config.browser_locale}
        if config.video_on_failure:
            context_args["record_video_dir"] = str(run_dir / "videos" / label)
        context = await browser.new_context(**context_args)
        await context.clear_cookies()
        # Trace only the first retry.
        tracing = config.trace_on_retry and attempt == 2
        if tracing:
            await context.tracing.start(screenshots=True, snapshots=True)
        page = await context.new_page()
        session.page = page
        if config.verbose:
            print(f"\n===== Running journey on {label} =====")

        try:
            await asyncio.wait_for(run_journey(session, build_journey(config)), timeout=config.test_timeout_ms / 1000)
        except asyncio.TimeoutError:
            failed = reporter.current
            session.abandon(f"Timed out after {config.test_timeout_ms} ms")
            if config.capture_evidence:
                await reporter.capture(page, "timeout", step=failed or reporter.failed_step)

        if isinstance(session.error, ResolutionError):
            try:
                inventory = await build_element_inventory(page)
                inv_path = run_dir / f"{sanitize_for_filename(label)}_element_inventory.json"
                inv_path.write_text(json.dumps(inventory, indent=2), encoding="utf-8")
                if config.verbose:
                    print(f"🧭 Element inventory saved to {inv_path}")
            except PlaywrightError as e:
                print(f"🧭 Element inventory failed: {e}")

        if tracing:
            await context.tracing.stop(path=str(run_dir / f"{sanitize_for_filename(label)}_trace.zip"))

        video = page.video
        await context.close()
        if video is not None and session.state is JourneyState.VERIFIED:
            Path(await video.path()).unlink(missing_ok=True)
    except Exception as e:
        if session.state is JourneyState.VERIFIED:
            print(f"⚠️ [{label}] Artifact handling failed: {e}")
        else:
            print(f"✖ [{label}] Browser error: {e}")
            session.abandon(f"Browser error: {e}")
    finally:
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                print(f"⚠️ [{label}] Browser close failed: {e}")

    return summarize(session, engine, attempt, int((time.monotonic() - started) * 1000))


async def run_browser(p, engine: str, config: JourneyConfig, run_dir: Path) -> dict:
    """Run the journey on one engine, repeating the whole run up to config.retries times."""
    result: dict = {}
    for attempt in range(1, config.retries + 2):
        result = await run_attempt(p, engine, config, run_dir, attempt)
        if result["status"] == "passed":
            break
        if attempt <= config.retries:
            print(f"↻ Retrying {engine} (attempt {attempt + 1} of {config.retries + 1})")
    result["attempts"] = result["attempt"]
    result["flaky"] = result["status"] == "passed" and result["attempt"] > 1
    if result["status"] == "passed":
        print(f"✓ Passed: {result['name']}")
    else:
        err = result["error"]
        err_excerpt = err if len(err) < 300 else (err[:297] + "...")
        print(f"✖ Failed: {result['name']} — {err_excerpt}")
    return result


async def run_suite(config: JourneyConfig, run_dir: Path) -> dict:
    run_dir.mkdir(parents=True, exist_ok=True)
    async with async_playwright() as p:
        # Engines share nothing but the driver connection.
        results = await asyncio.gather(*(run_browser(p, engine, config, run_dir) for engine in config.browsers))
    return {"tests": list(results)}
