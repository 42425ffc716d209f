"""HTML verification report generation using Jinja2 templates.

Collects connectivity reports and capture-session summaries from a test
run and renders them into a single HTML file with the expected-vs-observed
matrix of every check.

Usage::

    gen = ReportGenerator()
    gen.set_title("WireGuard dataplane")
    gen.add_connectivity_report(checker.last_report, name="wl0 <-> wl1")
    gen.add_capture_summary(session, passed=True)
    gen.generate("output/report.html")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

if TYPE_CHECKING:
    from ..capture.classifier import CaptureSession
    from ..connectivity.report import ConnectivityReport

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
DEFAULT_TEMPLATE = "report_template.html"


@dataclass
class CheckRecord:
    """One check as shown in the report summary table.

    Attributes:
        name: Check label.
        kind: ``connectivity`` or ``capture``.
        passed: Whether the check passed.
        summary: One-line outcome.

    """

    name: str
    kind: str
    passed: bool
    summary: str = ""


@dataclass
class ReportData:
    """Everything the HTML template renders: checks, matrices, and capture tables.

    Attributes:
        title: Report title.
        timestamp: ISO-8601 generation timestamp.
        environment: Environment metadata (cluster, dataplane, versions).
        checks: Every recorded check in order.
        connectivity_reports: Rendered connectivity reports.
        capture_summaries: Per-session matcher counts.

    """

    title: str = "Dataplane Verification Report"
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    environment: dict[str, str] = field(default_factory=dict)
    checks: list[CheckRecord] = field(default_factory=list)
    connectivity_reports: list[dict[str, Any]] = field(default_factory=list)
    capture_summaries: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_checks(self) -> int:
        """Total number of checks."""
        return len(self.checks)

    @property
    def passed_checks(self) -> int:
        """Number of passing checks."""
        return sum(1 for c in self.checks if c.passed)

    @property
    def failed_checks(self) -> int:
        """Number of failing checks."""
        return self.total_checks - self.passed_checks

    @property
    def pass_rate(self) -> float:
        """Pass rate as a percentage."""
        if self.total_checks == 0:
            return 0.0
        return (self.passed_checks / self.total_checks) * 100


class ReportGenerator:
    """Generate HTML verification reports from Jinja2 templates.

    Args:
        template_dir: Directory containing Jinja2 templates.
        template_name: Name of the main report template.

    """

    def __init__(
        self,
        template_dir: Path = TEMPLATE_DIR,
        template_name: str = DEFAULT_TEMPLATE,
    ) -> None:
        """Create an empty report bound to *template_name* under *template_dir*."""
        self._template_dir = Path(template_dir)
        self._template_name = template_name
        self._data = ReportData()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def data(self) -> ReportData:
        """Return the collected report data."""
        return self._data

    @property
    def total_checks(self) -> int:
        """Total number of recorded checks."""
        return self._data.total_checks

    @property
    def passed_checks(self) -> int:
        """Number of passing checks."""
        return self._data.passed_checks

    @property
    def failed_checks(self) -> int:
        """Number of failing checks."""
        return self._data.failed_checks

    @property
    def pass_rate(self) -> float:
        """Pass rate as a percentage."""
        return self._data.pass_rate

    def set_title(self, title: str) -> None:
        """Set the report title."""
        self._data.title = title

    def set_environment(self, env: dict[str, str]) -> None:
        """Set environment metadata (cluster name, versions, etc.)."""
        self._data.environment = dict(env)

    def add_connectivity_report(self, report: ConnectivityReport, name: str | None = None) -> None:
        """Add the report of a connectivity check."""
        label = name or f"connectivity #{len(self._data.connectivity_reports) + 1}"
        entry = report.to_dict()
        entry["name"] = label
        entry["matrix"] = report.render_matrix()
        self._data.connectivity_reports.append(entry)
        self._data.checks.append(
            CheckRecord(name=label, kind="connectivity", passed=report.passed, summary=report.summary())
        )

    def add_capture_summary(
        self,
        session: CaptureSession,
        passed: bool = True,
        name: str | None = None,
    ) -> None:
        """Add a capture session's matcher counts.

        Args:
            session: Session whose counters to record.
            passed: Outcome of the assertions made on the session.
            name: Check label; defaults to the session name.

        """
        label = name or session.name
        self._data.capture_summaries.append({
            "name": label,
            "passed": passed,
            "lines_seen": session.lines_seen,
            "counts": session.counts(),
        })
        self._data.checks.append(
            CheckRecord(name=label, kind="capture", passed=passed, summary=session.summary())
        )

    def generate(self, output_path: str | Path) -> Path:
        """Render the report and write it to *output_path*, creating parent directories.

        Args:
            output_path: Destination file path.

        Returns:
            Path to the generated report file.

        """
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)

        html = self.render()
        output.write_text(html, encoding="utf-8")
        self._logger.info("Report generated: %s", output)
        return output

    def render(self) -> str:
        """Return the rendered HTML as a string."""
        env = Environment(
            loader=FileSystemLoader(str(self._template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        template = env.get_template(self._template_name)
        return template.render(
            data=self._data,
            title=self._data.title,
            timestamp=self._data.timestamp,
            environment=self._data.environment,
            checks=self._data.checks,
            connectivity_reports=self._data.connectivity_reports,
            capture_summaries=self._data.capture_summaries,
            total_checks=self._data.total_checks,
            passed_checks=self._data.passed_checks,
            failed_checks=self._data.failed_checks,
            pass_rate=self._data.pass_rate,
        )
