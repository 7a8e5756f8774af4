import csv
import html
import re
import time
import zipfile
from dataclasses import asdict, dataclass, field
from pathlib import Path

from playwright.async_api import Error as PlaywrightError

from locator import Outcome, Resolution, ResolutionError


@dataclass
class StepOutcome:
    index: int
    name: str
    outcome: Outcome = Outcome.CONFIRMED
    detail: str = ""
    target: str | None = None
    attempted: list[str] = field(default_factory=list)
    soft_misses: list[str] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data


def sanitize_for_filename(text: str) -> str:
    """Sanitize text for use in filenames."""
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_").lower()[:100]


def evidence_path(evidence_dir: Path, label: str, step_index: int, context: str, extension: str = "png") -> Path:
    label_slug = sanitize_for_filename(label)
    context_slug = sanitize_for_filename(context) or "state"
    return evidence_dir / f"{label_slug}_step{step_index:02d}_{context_slug}.{extension}"


class Reporter:
    """Collects per-step outcomes for one run and prints them the console way.

    Progress lines are printed only when verbose; failures always are.
    """

    def __init__(self, label: str, evidence_dir: Path | None = None, verbose: bool = False, screenshot_delay_ms: int = 0):
        self.label = label
        self.evidence_dir = evidence_dir
        self.verbose = verbose
        self.screenshot_delay_ms = screenshot_delay_ms
        self.outcomes: list[StepOutcome] = []
        self._current: StepOutcome | None = None
        self._started = 0.0

    @property
    def current(self) -> StepOutcome | None:
        return self._current

    @property
    def passed(self) -> bool:
        return bool(self.outcomes) and all(o.outcome is not Outcome.FAILED for o in self.outcomes)

    @property
    def failed_step(self) -> StepOutcome | None:
        for o in self.outcomes:
            if o.outcome is Outcome.FAILED:
                return o
        return None

    @property
    def evidence(self) -> list[str]:
        return [path for o in self.outcomes for path in o.evidence]

    def note(self, message: str) -> None:
        if self.verbose:
            print(f"[{self.label}] {message}")

    def begin_step(self, index: int, name: str) -> StepOutcome:
        self._current = StepOutcome(index=index, name=name)
        self._started = time.monotonic()
        self.outcomes.append(self._current)
        self.note(f"→ Step {index}: {name}")
        return self._current

    def resolved(self, resolution: Resolution) -> None:
        if resolution.index == 0:
            self.note(f"✓ {resolution.target} located using: {resolution.strategy}")
        else:
            self.note(f"⚠️ {resolution.target} located by fallback #{resolution.index + 1}: {resolution.strategy}")

    def soft_miss(self, target: str, detail: str) -> None:
        if self._current is not None:
            self._current.soft_misses.append(f"{target}: {detail}")
        self.note(f"ℹ️ Not observed ({target}): {detail}")

    def pass_step(self, detail: str = "") -> None:
        step = self._current
        if step is None:
            return
        step.outcome = Outcome.CONFIRMED
        step.detail = detail
        step.duration_ms = int((time.monotonic() - self._started) * 1000)
        self.note(f"✅ {step.name}")
        self._current = None

    def fail_step(self, error: BaseException) -> StepOutcome:
        step = self._current
        if step is None:
            step = self.begin_step(len(self.outcomes) + 1, "Journey")
        step.outcome = Outcome.FAILED
        step.detail = str(error) or error.__class__.__name__
        step.duration_ms = int((time.monotonic() - self._started) * 1000)
        if isinstance(error, ResolutionError):
            step.target = error.target
            step.attempted = list(error.attempted)
        print(f"✖ [{self.label}] Step {step.index} failed: {step.name} — {step.detail}")
        self._current = None
        return step

    async def capture(self, page, context: str, step: StepOutcome | None = None) -> str | None:
        """Screenshot the page as evidence. Never raises; a failed capture is only reported."""
        step = step or self._current
        if self.evidence_dir is None:
            return None
        index = step.index if step else 0
        shot = evidence_path(self.evidence_dir, self.label, index, context)
        try:
            shot.parent.mkdir(parents=True, exist_ok=True)
            if self.screenshot_delay_ms > 0:
                await page.wait_for_timeout(self.screenshot_delay_ms)
            await page.screenshot(path=str(shot), full_page=True)
        except (PlaywrightError, OSError) as e:
            print(f"⚠️ [{self.label}] Could not save screenshot '{context}': {e}")
            return None
        if step is not None:
            step.evidence.append(str(shot))
        self.note(f"📸 Screenshot saved: {shot.name}")
        return str(shot)


async def build_element_inventory(page, limit: int = 200) -> dict:
    """Collect identifiers and labels currently on the page, to diagnose renamed targets."""
    inventory: dict[str, list] = {
        "testids": [],
        "aria_labels": [],
        "buttons": [],
        "links": [],
        "options": [],
    }

    async def collect(selector: str, key: str, attribute: str | None = None) -> None:
        for el in (await page.query_selector_all(selector))[:limit]:
            try:
                if attribute:
                    value = await el.get_attribute(attribute)
                else:
                    value = (await el.inner_text()).strip()
            except PlaywrightError:
                continue
            if value and value not in inventory[key]:
                inventory[key].append(value)

    await collect("[data-testid]", "testids", "data-testid")
    await collect("[aria-label]", "aria_labels", "aria-label")
    await collect("button, [role='button']", "buttons")
    await collect("a[href], [role='link']", "links")
    await collect("[role='option'], [role='menuitem']", "options")
    return inventory


def write_html_report(results_json: dict, html_path: Path) -> None:
    tests = results_json.get("tests", [])
    passed = sum(1 for r in tests if r.get("status") == "passed")
    failed = sum(1 for r in tests if r.get("status") == "failed")

    page = f"""
<html><head><meta charset="utf-8"><title>Journey Test Report</title>
<style>
body {{ font-family: Arial, sans-serif; padding: 20px; }}
.summary {{ margin-bottom: 16px; }}
.pass, .confirmed {{ color: #0a7b44; }}
.fail, .failed {{ color: #b00020; }}
.not_confirmed {{ color: #8a6d00; }}
table {{ border-collapse: collapse; }}
td, th {{ border: 1px solid #ddd; padding: 4px 8px; text-align: left; vertical-align: top; }}
pre {{ background: #f6f8fa; padding: 12px; border-radius: 6px; overflow: auto; }}
</style>
</head><body>
  <h1>Journey Test Report</h1>
  <div class="summary">
    <strong>Total:</strong> {len(tests)} &nbsp; <strong class="pass">Passed:</strong> {passed} &nbsp; <strong class="fail">Failed:</strong> {failed}
  </div>
  <hr />
  {''.join(render_test_result(tr) for tr in tests)}
</body></html>
"""
    html_path.write_text(page, encoding="utf-8")


def render_test_result(test_result: dict) -> str:
    status_class = "pass" if test_result.get("status") == "passed" else "fail"
    name = html.escape(test_result.get("name", "Unnamed Test"))
    error = test_result.get("error", "")
    screenshot = test_result.get("screenshot", "")
    rows = []
    for step in test_result.get("steps", []):
        notes = "<br/>".join(html.escape(m) for m in step.get("soft_misses", []))
        rows.append(
            f"<tr><td>{step.get('index')}</td><td>{html.escape(step.get('name', ''))}</td>"
            f"<td class=\"{step.get('outcome')}\">{step.get('outcome')}</td>"
            f"<td>{html.escape(step.get('detail', ''))}</td><td>{notes}</td></tr>"
        )
    table = (
        "<table><tr><th>#</th><th>Step</th><th>Outcome</th><th>Detail</th><th>Not observed</th></tr>"
        + "".join(rows)
        + "</table>"
    )
    img_tag = f"<div><img src=\"{html.escape(screenshot)}\" style=\"max-width: 100%; border: 1px solid #ddd;\" /></div>" if screenshot else ""
    error_block = f"<pre>{html.escape(error)}</pre>" if error else ""
    return f"""
  <section>
    <h3 class="{status_class}">{name} — {test_result.get('status', 'unknown').upper()}</h3>
    <p>State: {test_result.get('state', '')} &nbsp; Attempts: {test_result.get('attempts', 1)}</p>
    <details open>
      <summary>Steps</summary>
      {table}
    </details>
    {img_tag}
    {error_block}
  </section>
  <hr />
"""


def archive_files(zip_path: Path, files: list[Path]) -> None:
    with zipfile.ZipFile(zip_path, "w") as zf:
        for f in files:
            if f.exists():
                zf.write(f, arcname=f.name)


def log_to_csv(log_path: Path, timestamp: str, artifacts: dict) -> None:
    csv_exists = log_path.exists()
    with open(log_path, "a", newline="") as csvfile:
        writer = csv.writer(csvfile)
        if not csv_exists:
            writer.writerow(["Timestamp", "Results", "Report", "Archive", "Passed", "Failed"])
        writer.writerow([
            timestamp,
            str(artifacts.get("results")),
            str(artifacts.get("report")),
            str(artifacts.get("archive")),
            artifacts.get("passed", 0),
            artifacts.get("failed", 0),
        ])
