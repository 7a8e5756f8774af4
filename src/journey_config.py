import os
from dataclasses import dataclass, field

from targets import LOCALES


BASE_URL = "https://open.spotify.com/"
BROWSERS = ("chromium", "firefox", "webkit")


def _env_int(environ, name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


def _env_flag(environ, name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class JourneyConfig:
    base_url: str = BASE_URL
    locale: str = "pt-BR"
    query: str = "pink floyd"
    album_title: str = "The Dark Side of the Moon"
    title_pattern: str = "Spotify"
    browsers: list[str] = field(default_factory=lambda: ["chromium"])
    headless: bool = True
    verbose: bool = False
    viewport: dict = field(default_factory=lambda: {"width": 1366, "height": 768})
    browser_locale: str = "en-US"
    test_timeout_ms: int = 60000
    resolve_deadline_ms: int = 20000
    retries: int = 0
    capture_evidence: bool = True
    screenshot_delay_ms: int = 0
    trace_on_retry: bool = True
    video_on_failure: bool = True
    dismiss_consent: bool = True

    @classmethod
    def from_env(cls, environ=None) -> "JourneyConfig":
        env = os.environ if environ is None else environ
        on_ci = _env_flag(env, "CI", False)
        browsers = [b.strip() for b in env.get("E2E_BROWSERS", "chromium").split(",") if b.strip()]
        config = cls(
            base_url=env.get("E2E_BASE_URL", BASE_URL),
            locale=env.get("E2E_LOCALE", "pt-BR"),
            query=env.get("E2E_QUERY", "pink floyd"),
            album_title=env.get("E2E_ALBUM", "The Dark Side of the Moon"),
            browsers=browsers,
            headless=_env_flag(env, "E2E_HEADLESS", True),
            verbose=_env_flag(env, "E2E_VERBOSE", False),
            test_timeout_ms=_env_int(env, "E2E_TIMEOUT_MS", 60000),
            retries=_env_int(env, "E2E_RETRIES", 2 if on_ci else 0),
            capture_evidence=_env_flag(env, "E2E_EVIDENCE", True),
            screenshot_delay_ms=_env_int(env, "SCREENSHOT_DELAY_MS", 0),
            dismiss_consent=_env_flag(env, "E2E_DISMISS_CONSENT", True),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.locale not in LOCALES:
            raise ValueError(f"Unsupported locale '{self.locale}' (known: {', '.join(sorted(LOCALES))})")
        unknown = [b for b in self.browsers if b not in BROWSERS]
        if unknown:
            raise ValueError(f"Unknown browser(s): {', '.join(unknown)} (choose from {', '.join(BROWSERS)})")
        if not self.browsers:
            raise ValueError("At least one browser is required")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.test_timeout_ms <= 0:
            raise ValueError("test_timeout_ms must be > 0")
