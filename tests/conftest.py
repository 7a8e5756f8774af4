"""In-memory stand-in for a Playwright page.

Elements are plain records kept in document order; locators are predicates over
them. Only the calls the journey makes are implemented.
"""

import re
from pathlib import Path

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from journey_config import JourneyConfig
from report import Reporter
from targets import TRACKLIST


BASE_URL = "https://open.spotify.com/"
ALBUM_URL = BASE_URL + "album/4LH4d3cOWNNsVw41Gqt2kv"
DARK_SIDE = "The Dark Side of the Moon"
PT_AUTH_PHRASE = "Escute com uma conta gratuita do Spotify"

_ATTR_SELECTOR = re.compile(r"""^\[([\w-]+)(?:([*^]?)=["'](.*)["'])?\]$""")


def _match_text(expected, actual: str, exact: bool | None = False) -> bool:
    actual = actual or ""
    if isinstance(expected, re.Pattern):
        return bool(expected.search(actual))
    if exact:
        return actual.strip() == expected
    return expected.lower() in " ".join(actual.split()).lower()


class FakeElement:
    def __init__(self, tag="div", role=None, testid=None, text="", name=None, attrs=None, css=None,
                 visible=True, enabled=True, editable=True, in_tracklist=False, on_click=None, on_fill=None):
        self.tag = tag
        self.role = role or {"button": "button", "a": "link", "h1": "heading"}.get(tag)
        self.testid = testid
        self.text = text
        self.name = name
        self.attrs = dict(attrs or {})
        self.css = set(css or ())
        self.visible = visible
        self.enabled = enabled
        self.editable = editable
        self.in_tracklist = in_tracklist
        self.on_click = on_click
        self.on_fill = on_fill
        self.value = ""

    @property
    def accessible_name(self) -> str:
        if self.name is not None:
            return self.name
        return self.attrs.get("aria-label") or self.text

    def attribute(self, key: str):
        if key == "data-testid":
            return self.testid
        if key == "role":
            return self.role
        return self.attrs.get(key)

    def matches_css(self, selector: str) -> bool:
        for part in (p.strip() for p in selector.split(",")):
            if part in self.css or part == self.tag:
                return True
            m = _ATTR_SELECTOR.match(part)
            if m:
                key, op, value = m.groups()
                actual = self.attribute(key)
                if actual is None:
                    continue
                if value is None:
                    return True
                if (op == "*" and value in actual) or (op == "^" and actual.startswith(value)) or (not op and actual == value):
                    return True
        return False


class FakeHandle:
    def __init__(self, element: FakeElement):
        self.element = element

    async def get_attribute(self, name):
        return self.element.attribute(name)

    async def inner_text(self):
        return self.element.text


class FakeLocator:
    def __init__(self, page, predicate, description: str):
        self.page = page
        self.predicate = predicate
        self.description = description

    @property
    def first(self) -> "FakeLocator":
        return self

    def filter(self, has_text=None) -> "FakeLocator":
        return FakeLocator(
            self.page,
            lambda el: self.predicate(el) and (has_text is None or _match_text(has_text, el.text)),
            f"{self.description} >> has_text={has_text}",
        )

    def matches(self) -> list[FakeElement]:
        return [el for el in self.page.elements if self.predicate(el)]

    def _element(self) -> FakeElement:
        found = self.matches()
        if not found:
            raise PlaywrightTimeoutError(f"No element for {self.description}")
        return found[0]

    async def wait_for(self, state="visible", timeout=None):
        self.page.waits.append((self.description, state, timeout))
        found = self.matches()
        shown = bool(found) and found[0].visible
        if state == "visible" and shown:
            return
        if state == "hidden" and not shown:
            return
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.description} to be {state}")

    async def click(self, **kwargs):
        el = self._element()
        self.page.clicks.append(self.description)
        self.page.focused = el
        if el.on_click:
            el.on_click(self.page)

    async def fill(self, value, **kwargs):
        el = self._element()
        el.value = value
        if el.on_fill:
            el.on_fill(self.page, value)

    async def clear(self, **kwargs):
        self._element().value = ""

    async def input_value(self, **kwargs):
        return self._element().value

    async def is_enabled(self, **kwargs):
        return self._element().enabled

    async def is_editable(self, **kwargs):
        return self._element().editable

    async def is_visible(self, **kwargs):
        found = self.matches()
        return bool(found) and found[0].visible

    async def text_content(self, **kwargs):
        return self._element().text

    async def get_attribute(self, name, **kwargs):
        return self._element().attribute(name)

    async def evaluate(self, expression, arg=None):
        el = self._element()
        if "activeElement" in expression:
            return self.page.focused is el
        if "closest" in expression:
            if el.matches_css(arg):
                return False
            return not (el.in_tracklist and arg == TRACKLIST)
        raise NotImplementedError(expression)

    async def count(self):
        return len(self.matches())


class FakePage:
    def __init__(self, url="about:blank", title=""):
        self.url = url
        self.title_text = title
        self.elements: list[FakeElement] = []
        self.clicks: list[str] = []
        self.waits: list[tuple] = []
        self.load_states: list[str] = []
        self.screenshots: list[str] = []
        self.focused = None
        self.video = None

    def add(self, **kwargs) -> FakeElement:
        el = FakeElement(**kwargs)
        self.elements.append(el)
        return el

    def remove(self, el: FakeElement) -> None:
        self.elements.remove(el)

    async def goto(self, url, **kwargs):
        self.url = url

    async def wait_for_load_state(self, state="load", **kwargs):
        self.load_states.append(state)

    async def wait_for_timeout(self, ms):
        return None

    async def title(self):
        return self.title_text

    async def screenshot(self, path=None, **kwargs):
        self.screenshots.append(path)
        return b""

    def get_by_test_id(self, test_id):
        return FakeLocator(self, lambda el: el.testid == test_id, f"testid={test_id}")

    def get_by_text(self, text, exact=None):
        return FakeLocator(self, lambda el: bool(el.text) and _match_text(text, el.text, exact), f"text={text}")

    def get_by_role(self, role, name=None, exact=None, **kwargs):
        return FakeLocator(
            self,
            lambda el: el.role == role and (name is None or _match_text(name, el.accessible_name, exact)),
            f"role={role}|{name}",
        )

    def get_by_placeholder(self, text, exact=None):
        return FakeLocator(self, lambda el: _match_text(text, el.attrs.get("placeholder", ""), exact), f"placeholder={text}")

    def locator(self, selector):
        return FakeLocator(self, lambda el: el.matches_css(selector), f"css={selector}")

    async def query_selector_all(self, selector):
        return [FakeHandle(el) for el in self.elements if el.matches_css(selector)]


def build_spotify_page(with_locale_option: bool = True, auth_text: str = PT_AUTH_PHRASE) -> FakePage:
    """A page that behaves like the web player for the pt-BR journey."""
    page = FakePage(title="Spotify – Web Player: Music for everyone")
    lang_button = page.add(tag="button", testid="language-selection-button", text="English")
    menu = page.add(role="listbox", visible=False)
    option = None
    if with_locale_option:
        option = page.add(role="option", testid="language-option-pt-BR", text="Português do Brasil", visible=False)
    search = page.add(tag="input", role="searchbox", testid="search-input",
                      attrs={"placeholder": "What do you want to play?"})
    card = page.add(tag="a", testid="card-album", text=DARK_SIDE, attrs={"title": DARK_SIDE}, visible=False)

    def open_menu(p):
        menu.visible = True
        if option:
            option.visible = True

    def choose_locale(p):
        lang_button.text = "Português do Brasil"
        menu.visible = False
        option.visible = False
        search.attrs["placeholder"] = "O que você quer ouvir?"

    def show_results(p, value):
        card.visible = bool(value)

    def close_prompt(p):
        prompt.visible = False
        close.visible = False

    def show_prompt(p):
        prompt.visible = True
        close.visible = True

    def open_album(p):
        p.url = ALBUM_URL
        p.remove(card)
        p.add(tag="h1", text=DARK_SIDE)
        p.add(tag="button", name="Play", attrs={"aria-label": "Play"}, on_click=show_prompt)
        p.add(testid="tracklist", role="grid")
        p.add(tag="button", name="Play Speak to Me", attrs={"aria-label": "Play Speak to Me"}, in_tracklist=True)

    prompt = page.add(text=auth_text, visible=False)
    close = page.add(tag="button", name="Fechar", visible=False, on_click=close_prompt)

    lang_button.on_click = open_menu
    if option:
        option.on_click = choose_locale
    search.on_fill = show_results
    card.on_click = open_album
    return page


@pytest.fixture
def spotify_page() -> FakePage:
    return build_spotify_page()


@pytest.fixture
def config() -> JourneyConfig:
    return JourneyConfig(screenshot_delay_ms=0, resolve_deadline_ms=5000)


@pytest.fixture
def reporter(tmp_path: Path) -> Reporter:
    return Reporter("chromium", evidence_dir=tmp_path / "evidence")
