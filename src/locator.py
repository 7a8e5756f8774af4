import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


DEFAULT_STRATEGY_TIMEOUT_MS = 3000
DEFAULT_DEADLINE_MS = 20000


class Outcome(Enum):
    CONFIRMED = "confirmed"
    SOFT_MISS = "not_confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class Strategy:
    """One way of locating a target.

    locate: builds a (lazy) locator for the page; never touches the page itself.
    accept: optional read-only check run once the candidate is visible.
    """

    name: str
    locate: Callable[[Page], Locator]
    timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS
    accept: Callable[[Locator], Awaitable[bool]] | None = None


@dataclass(frozen=True)
class Target:
    name: str
    strategies: tuple[Strategy, ...]


@dataclass
class Resolution:
    target: str
    locator: Locator
    strategy: str
    index: int


class ResolutionError(AssertionError):
    def __init__(self, target: str, attempted: list[str]):
        self.target = target
        self.attempted = list(attempted)
        tried = ", ".join(self.attempted) if self.attempted else "none"
        super().__init__(f"Could not resolve target '{target}' (tried: {tried})")


@dataclass
class Check:
    target: str
    outcome: Outcome
    resolution: Resolution | None = None
    error: ResolutionError | None = None

    @property
    def confirmed(self) -> bool:
        return self.outcome is Outcome.CONFIRMED


async def resolve(page: Page, target: Target, deadline_ms: int = DEFAULT_DEADLINE_MS) -> Resolution:
    """Return the first strategy whose candidate becomes visible, in priority order."""
    if not target.strategies:
        raise ValueError(f"Target '{target.name}' has no strategies")
    attempted: list[str] = []
    end = time.monotonic() + deadline_ms / 1000
    for index, strategy in enumerate(target.strategies):
        remaining_ms = int((end - time.monotonic()) * 1000)
        if remaining_ms <= 0:
            break
        attempted.append(strategy.name)
        # Coarse strategies may match several elements: DOM order decides.
        candidate = strategy.locate(page).first
        try:
            await candidate.wait_for(state="visible", timeout=min(strategy.timeout_ms, remaining_ms))
        except PlaywrightTimeoutError:
            continue
        if strategy.accept is not None and not await strategy.accept(candidate):
            continue
        return Resolution(target=target.name, locator=candidate, strategy=strategy.name, index=index)
    raise ResolutionError(target.name, attempted)


async def probe(page: Page, target: Target, deadline_ms: int = DEFAULT_DEADLINE_MS) -> Check:
    try:
        resolution = await resolve(page, target, deadline_ms)
    except ResolutionError as e:
        return Check(target=target.name, outcome=Outcome.SOFT_MISS, error=e)
    return Check(target=target.name, outcome=Outcome.CONFIRMED, resolution=resolution)


def _describe(value) -> str:
    if isinstance(value, re.Pattern):
        return f"/{value.pattern}/"
    return f"'{value}'"


def by_test_id(test_id: str, timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> Strategy:
    return Strategy(f"test id '{test_id}'", lambda page: page.get_by_test_id(test_id), timeout_ms)


def by_exact_text(text: str, timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> Strategy:
    return Strategy(f"exact text '{text}'", lambda page: page.get_by_text(text, exact=True), timeout_ms)


def by_partial_text(text: str, timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> Strategy:
    return Strategy(f"partial text '{text}'", lambda page: page.get_by_text(text), timeout_ms)


def by_text_pattern(pattern: re.Pattern, timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> Strategy:
    return Strategy(f"text {_describe(pattern)}", lambda page: page.get_by_text(pattern), timeout_ms)


def by_attribute(attribute: str, value: str, timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> Strategy:
    selector = f'[{attribute}*="{value}"]'
    return Strategy(f"{attribute} attribute '{value}'", lambda page: page.locator(selector), timeout_ms)


def by_role(
    role: str,
    name: str | re.Pattern | None = None,
    timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS,
    accept: Callable[[Locator], Awaitable[bool]] | None = None,
) -> Strategy:
    label = f"role '{role}'" if name is None else f"role '{role}' named {_describe(name)}"

    def locate(page: Page) -> Locator:
        if name is None:
            return page.get_by_role(role)
        return page.get_by_role(role, name=name)

    return Strategy(label, locate, timeout_ms, accept)


def by_placeholder(pattern: str | re.Pattern, timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> Strategy:
    return Strategy(f"placeholder {_describe(pattern)}", lambda page: page.get_by_placeholder(pattern), timeout_ms)


def by_css(
    selector: str,
    has_text: str | re.Pattern | None = None,
    timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS,
    name: str | None = None,
) -> Strategy:
    label = name or (f"css '{selector}'" if has_text is None else f"css '{selector}' with text {_describe(has_text)}")

    def locate(page: Page) -> Locator:
        loc = page.locator(selector)
        if has_text is not None:
            loc = loc.filter(has_text=has_text)
        return loc

    return Strategy(label, locate, timeout_ms)
