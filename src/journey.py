import re
import urllib.parse
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

import targets
from journey_config import JourneyConfig
from locator import Check, Resolution, Target
from locator import probe as probe_target
from locator import resolve as resolve_target
from report import Reporter


class JourneyState(Enum):
    NOT_STARTED = "not_started"
    NAVIGATED = "navigated"
    LOCALE_MENU_OPEN = "locale_menu_open"
    LOCALE_CHANGED = "locale_changed"
    SEARCH_FOCUSED = "search_focused"
    QUERY_SUBMITTED = "query_submitted"
    RESULT_LOCATED = "result_located"
    DETAIL_PAGE_OPEN = "detail_page_open"
    PLAY_ATTEMPTED = "play_attempted"
    AUTH_BOUNDARY_OBSERVED = "auth_boundary_observed"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class Session:
    page: Page | None
    config: JourneyConfig
    reporter: Reporter
    locale: str | None = None
    viewport: dict = field(default_factory=dict)
    state: JourneyState = JourneyState.NOT_STARTED
    error: BaseException | None = None
    auth_prompt: Resolution | None = None

    @property
    def url(self) -> str:
        return self.page.url if self.page is not None else ""

    @property
    def profile(self) -> targets.LocaleProfile:
        return targets.get_locale_profile(self.config.locale)

    async def resolve(self, target: Target) -> Resolution:
        resolution = await resolve_target(self.page, target, self.config.resolve_deadline_ms)
        self.reporter.resolved(resolution)
        return resolution

    async def probe(self, target: Target) -> Check:
        check = await probe_target(self.page, target, self.config.resolve_deadline_ms)
        if check.confirmed:
            self.reporter.resolved(check.resolution)
        else:
            self.reporter.soft_miss(check.target, str(check.error))
        return check

    async def capture(self, context: str) -> str | None:
        if not self.config.capture_evidence:
            return None
        return await self.reporter.capture(self.page, context)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.state = JourneyState.FAILED
        self.reporter.fail_step(error)

    def abandon(self, reason: str) -> None:
        """Mark the in-flight step (if any) failed after an external timeout or cancellation."""
        if self.state is JourneyState.FAILED:
            return
        self.fail(AssertionError(reason))


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[Session], Awaitable[None]]
    reaches: JourneyState


async def run_journey(session: Session, steps: list[Step]) -> JourneyState:
    """Run steps strictly in order; the first failure ends the journey."""
    for index, step in enumerate(steps, start=1):
        session.reporter.begin_step(index, step.name)
        try:
            await step.action(session)
        except Exception as e:
            failed = session.reporter.current
            session.fail(e)
            if session.config.capture_evidence:
                await session.reporter.capture(session.page, "failure", step=failed)
            return session.state
        session.state = step.reaches
        session.reporter.pass_step()
    session.state = JourneyState.VERIFIED
    return session.state


async def require_enabled(resolution: Resolution) -> None:
    if not await resolution.locator.is_enabled():
        raise AssertionError(f"Target '{resolution.target}' is visible but not enabled")


async def require_text(resolution: Resolution) -> str:
    text = (await resolution.locator.text_content() or "").strip()
    if not text:
        raise AssertionError(f"Target '{resolution.target}' has no text content")
    return text


def require_url_contains(session: Session, *fragments: str) -> str:
    current = session.url
    for fragment in fragments:
        if fragment not in current:
            raise AssertionError(f"URL '{current}' does not contain '{fragment}'")
    return current


async def navigate_home(session: Session) -> None:
    page = session.page
    config = session.config
    await page.goto(config.base_url)
    await page.wait_for_load_state("domcontentloaded")
    require_url_contains(session, urllib.parse.urlparse(config.base_url).hostname or config.base_url)
    title = await page.title()
    if not re.search(config.title_pattern, title, re.I):
        raise AssertionError(f"Page title '{title}' does not match /{config.title_pattern}/i")
    if config.dismiss_consent:
        consent = await session.probe(targets.consent_button())
        if consent.confirmed:
            await consent.resolution.locator.click()
            session.reporter.note("→ Dismissed cookie banner")
    await session.capture("homepage-loaded")


async def open_language_menu(session: Session) -> None:
    button = await session.resolve(targets.language_button())
    await require_enabled(button)
    text = await require_text(button)
    session.reporter.note(f"🌐 Language button found with text: \"{text}\"")
    await session.capture("language-button-located")
    await button.locator.click()
    menu = await session.probe(targets.language_menu())
    if menu.confirmed:
        count = await session.page.locator(targets.LANGUAGE_OPTIONS).count()
        session.reporter.note(f"🌍 Found {count} language options available")
    await session.capture("language-selection-opened")


async def select_locale(session: Session) -> None:
    option = await session.resolve(targets.locale_option(session.profile))
    await require_enabled(option)
    text = await require_text(option)
    session.reporter.note(f"→ Locale option found with text: \"{text}\"")
    await session.capture("before-selecting-locale")
    await option.locator.click()
    await session.page.wait_for_load_state("networkidle")


async def verify_locale(session: Session) -> None:
    profile = session.profile
    indicator = await session.resolve(targets.locale_indicator(profile))
    text = (await indicator.locator.text_content() or "").strip()
    if not profile.indicator.search(text):
        raise AssertionError(f"Locale indicator text '{text}' does not match /{profile.indicator.pattern}/")
    session.locale = profile.code
    session.reporter.note(f"✓ Locale {profile.code} active: \"{text}\"")
    await session.capture("after-selecting-locale")


async def focus_search(session: Session) -> None:
    search = await session.resolve(targets.search_input(session.profile))
    await require_enabled(search)
    if not await search.locator.is_editable():
        raise AssertionError("Search input is not editable")
    placeholder = await search.locator.get_attribute("placeholder")
    if not placeholder:
        raise AssertionError("Search input has no placeholder")
    session.reporter.note(f"🔍 Search input found with placeholder: \"{placeholder}\"")
    await session.capture("before-clicking-search")
    await search.locator.click()
    focused = await search.locator.evaluate("el => el === document.activeElement")
    if not focused:
        raise AssertionError("Search input did not receive focus")


async def submit_query(session: Session) -> None:
    query = session.config.query
    search = await session.resolve(targets.search_input(session.profile))
    await search.locator.clear()
    await search.locator.fill(query)
    value = await search.locator.input_value()
    if value != query:
        raise AssertionError(f"Search input holds '{value}', expected '{query}'")
    await session.capture("search-query-entered")
    suggestions = await session.probe(targets.search_suggestions())
    if suggestions.confirmed:
        await session.capture("search-suggestions")


async def locate_result(session: Session) -> None:
    title = session.config.album_title
    await session.page.wait_for_load_state("networkidle")
    album = await session.resolve(targets.album_entry(title))
    text = await album.locator.text_content() or ""
    if not re.search(re.escape(title), text, re.I):
        raise AssertionError(f"Album entry text '{text}' does not mention '{title}'")
    await require_enabled(album)
    await session.capture("search-results")


async def open_detail(session: Session) -> None:
    title = session.config.album_title
    album = await session.resolve(targets.album_entry(title))
    await require_enabled(album)
    await session.capture("before-clicking-album")
    await album.locator.click()
    await session.page.wait_for_load_state("networkidle")
    current = require_url_contains(session, targets.ALBUM_PATH)
    session.reporter.note(f"🔗 Navigated to: {current}")
    heading = await session.probe(targets.album_heading(title))
    if heading.confirmed:
        session.reporter.note(f"🎵 Album page confirmed with title: \"{await heading.resolution.locator.text_content()}\"")
    await session.capture("album-page-loaded")


async def attempt_play(session: Session) -> None:
    await session.page.wait_for_load_state("networkidle")
    play = await session.resolve(targets.main_play_button(session.profile))
    await require_enabled(play)
    label = await play.locator.get_attribute("aria-label")
    session.reporter.note(f"▶️ Play button aria-label: \"{label}\"")
    await session.capture("before-clicking-play")
    await play.locator.click()


async def observe_auth_boundary(session: Session) -> None:
    profile = session.profile
    prompt = await session.resolve(targets.auth_prompt(profile))
    session.auth_prompt = prompt
    if prompt.index != 0:
        session.reporter.soft_miss("auth-prompt", f"'{profile.auth_phrase}' not shown; confirmed by {prompt.strategy}")
    text = (await prompt.locator.text_content() or "").strip()
    session.reporter.note(f"🔐 Authentication prompt text: \"{text}\"")
    await session.probe(targets.login_control(profile))
    await session.capture("authentication-prompt")


async def verify_consistency(session: Session) -> None:
    profile = session.profile
    close = await session.probe(targets.close_prompt(profile))
    if close.confirmed:
        await close.resolution.locator.click()
        if session.auth_prompt is not None:
            prompt = session.auth_prompt.locator
        else:
            prompt = session.page.get_by_text(profile.auth_phrase).first
        try:
            await prompt.wait_for(state="hidden", timeout=5000)
        except PlaywrightTimeoutError:
            raise AssertionError("Authentication prompt still visible after closing it") from None
        await session.resolve(targets.main_play_button(profile))
    require_url_contains(session, urllib.parse.urlparse(session.config.base_url).hostname or "", targets.ALBUM_PATH)
    count = await session.page.locator(targets.ALBUM_PAGE_ELEMENTS).count()
    session.reporter.note(f"🎵 Album page contains {count} key elements")
    await session.capture("completion-state")


def build_journey(config: JourneyConfig) -> list[Step]:
    return [
        Step("Navigate to homepage", navigate_home, JourneyState.NAVIGATED),
        Step("Open language selection menu", open_language_menu, JourneyState.LOCALE_MENU_OPEN),
        Step(f"Select locale {config.locale}", select_locale, JourneyState.LOCALE_CHANGED),
        Step("Validate locale change took effect", verify_locale, JourneyState.LOCALE_CHANGED),
        Step("Focus search input", focus_search, JourneyState.SEARCH_FOCUSED),
        Step(f"Type search query '{config.query}'", submit_query, JourneyState.QUERY_SUBMITTED),
        Step(f"Locate '{config.album_title}' in search results", locate_result, JourneyState.RESULT_LOCATED),
        Step(f"Open '{config.album_title}' album page", open_detail, JourneyState.DETAIL_PAGE_OPEN),
        Step("Click main album play button", attempt_play, JourneyState.PLAY_ATTEMPTED),
        Step("Observe authentication prompt", observe_auth_boundary, JourneyState.AUTH_BOUNDARY_OBSERVED),
        Step("Verify page consistency", verify_consistency, JourneyState.VERIFIED),
    ]
