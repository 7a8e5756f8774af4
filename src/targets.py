import re
from dataclasses import dataclass, replace

from playwright.async_api import Locator

from locator import (
    Strategy,
    Target,
    by_attribute,
    by_css,
    by_exact_text,
    by_partial_text,
    by_placeholder,
    by_role,
    by_test_id,
    by_text_pattern,
)


ALBUM_PATH = "/album/"
ALBUM_PAGE_ELEMENTS = 'h1, [data-testid="album-title"], [data-testid="tracklist"]'
LANGUAGE_OPTIONS = '[role="option"], [role="menuitem"]'
TRACKLIST = '[data-testid="tracklist"], .tracklist, [role="grid"]'
LANGUAGE_MENU = (
    '[role="listbox"], [role="menu"], [role="option"], [role="menuitem"], '
    '.language-dropdown, [data-testid^="language-option"]'
)


@dataclass(frozen=True)
class LocaleProfile:
    """Locale-specific wording the journey relies on."""

    code: str
    option_name: re.Pattern
    indicator: re.Pattern
    search_placeholder: re.Pattern
    play_label: re.Pattern
    play_name: re.Pattern
    close_label: re.Pattern
    login_label: re.Pattern
    auth_phrase: str
    auth_alternatives: tuple[str, ...]


LOCALES = {
    "pt-BR": LocaleProfile(
        code="pt-BR",
        option_name=re.compile(r"portugu[eê]s.*brasil|brasil", re.I),
        indicator=re.compile(r"Pesquisar|Entrar|Criar conta|Português|Brasil", re.I),
        search_placeholder=re.compile(r"o que você quer ouvir|pesquisar", re.I),
        play_label=re.compile(r"^(Play|Tocar)$", re.I),
        play_name=re.compile(r"play|tocar", re.I),
        close_label=re.compile(r"close|fechar|×", re.I),
        login_label=re.compile(r"entrar|inscrever-se|log in|sign up", re.I),
        auth_phrase="Escute com uma conta gratuita do Spotify",
        auth_alternatives=(
            "conta gratuita",
            "Spotify gratuito",
            "Escute",
            "Inscrever-se",
            "Entrar",
            "conta do Spotify",
        ),
    ),
    "en": LocaleProfile(
        code="en",
        option_name=re.compile(r"english", re.I),
        indicator=re.compile(r"Search|Log in|Sign up|English", re.I),
        search_placeholder=re.compile(r"what do you want to (listen to|play)\?|search", re.I),
        play_label=re.compile(r"^Play$", re.I),
        play_name=re.compile(r"play", re.I),
        close_label=re.compile(r"close|×", re.I),
        login_label=re.compile(r"log in|sign up", re.I),
        auth_phrase="Start listening with a free Spotify account",
        auth_alternatives=(
            "free Spotify account",
            "Sign up free",
            "Log in",
            "Spotify account",
        ),
    ),
}


def get_locale_profile(code: str) -> LocaleProfile:
    try:
        return LOCALES[code]
    except KeyError:
        raise ValueError(f"Unsupported locale '{code}' (known: {', '.join(sorted(LOCALES))})") from None


def _text_matches(pattern: re.Pattern):
    async def accept(loc: Locator) -> bool:
        return bool(pattern.search(await loc.text_content() or ""))
    return accept


def _outside(selector: str):
    async def accept(loc: Locator) -> bool:
        return await loc.evaluate("(el, sel) => !el.closest(sel)", selector)
    return accept


_outside_tracklist = _outside(TRACKLIST)
# Menu entries name every locale, so they prove nothing about the active one.
_outside_language_menu = _outside(LANGUAGE_MENU)


def consent_button() -> Target:
    return Target("consent-button", (
        by_css("#onetrust-accept-btn-handler", timeout_ms=1500),
        by_role("button", re.compile(r"accept|aceitar|i\s*agree|concordo", re.I), timeout_ms=1500),
    ))


def language_button() -> Target:
    return Target("language-button", (
        by_test_id("language-selection-button", timeout_ms=5000),
        by_role("button", re.compile(r"language|idioma", re.I)),
    ))


def language_menu() -> Target:
    return Target("language-menu", (
        by_css('[role="listbox"], [role="menu"], .language-dropdown'),
        by_css(LANGUAGE_OPTIONS),
    ))


def locale_option(profile: LocaleProfile) -> Target:
    return Target(f"locale-option:{profile.code}", (
        by_test_id(f"language-option-{profile.code}", timeout_ms=5000),
        by_role("option", profile.option_name),
        by_css('[data-testid^="language-option"]', has_text=profile.option_name),
    ))


def locale_indicator(profile: LocaleProfile) -> Target:
    return Target(f"locale-indicator:{profile.code}", (
        by_css(
            '[data-testid="language-selection-button"]',
            has_text=profile.indicator,
            timeout_ms=5000,
            name="language button text",
        ),
        replace(by_text_pattern(profile.indicator, timeout_ms=5000), accept=_outside_language_menu),
    ))


def search_input(profile: LocaleProfile) -> Target:
    return Target("search-input", (
        by_test_id("search-input", timeout_ms=5000),
        by_role("searchbox"),
        by_placeholder(profile.search_placeholder),
    ))


def search_suggestions() -> Target:
    return Target("search-suggestions", (
        by_css('[data-testid*="search"]:not(input), [role="listbox"], .search-suggestions', timeout_ms=2000),
    ))


def album_entry(title: str) -> Target:
    return Target(f"album:{title}", (
        by_exact_text(title, timeout_ms=5000),
        by_partial_text(title),
        by_attribute("title", title),
        by_css('[data-testid*="card"]', has_text=title),
    ))


def album_heading(title: str) -> Target:
    pattern = re.compile(re.escape(title), re.I)
    return Target(f"album-heading:{title}", (
        by_css("h1", has_text=pattern, timeout_ms=2000),
        replace(by_test_id("album-title", timeout_ms=2000), accept=_text_matches(pattern)),
        replace(by_test_id("entity-title", timeout_ms=2000), accept=_text_matches(pattern)),
        by_partial_text(title, timeout_ms=2000),
    ))


def main_play_button(profile: LocaleProfile) -> Target:
    # Last entry matches any button whose name mentions play; kept as a last resort.
    return Target("main-play-button", (
        by_role("button", profile.play_label, accept=_outside_tracklist),
        by_css("button", has_text=profile.play_label),
        by_test_id("play-button"),
        by_role("button", profile.play_name),
    ))


def auth_prompt(profile: LocaleProfile) -> Target:
    strategies: list[Strategy] = [by_partial_text(profile.auth_phrase, timeout_ms=5000)]
    strategies.extend(by_partial_text(text, timeout_ms=1000) for text in profile.auth_alternatives)
    strategies.append(by_test_id("login-modal", timeout_ms=1000))
    return Target("auth-prompt", tuple(strategies))


def login_control(profile: LocaleProfile) -> Target:
    return Target("login-control", (
        by_role("button", profile.login_label, timeout_ms=2000),
        by_role("link", profile.login_label, timeout_ms=2000),
    ))


def close_prompt(profile: LocaleProfile) -> Target:
    return Target("close-prompt", (
        by_test_id("modal-close-button", timeout_ms=2000),
        by_role("button", profile.close_label, timeout_ms=2000),
        by_css('button[aria-label*="close" i]', timeout_ms=2000),
    ))
