# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "click>=8.0",
# ]
# ///
"""
CC Heatmap - GitHub-style AI activity heatmap from proof-log files.

Reads ~/ops/proof-log/YYYY-MM-DD.md files and produces a self-contained HTML
report: a calendar heatmap of daily AI minutes plus total time, active days,
streaks and the most active project.

USAGE:
    uv run python/cc_heatmap.py > heatmap.html        # last 52 weeks to stdout
    uv run python/cc_heatmap.py --weeks 26            # last 26 weeks
    uv run python/cc_heatmap.py --dir ~/my-logs       # custom log dir
    uv run python/cc_heatmap.py --out heatmap.html    # write to file
    uv run python/cc_heatmap.py --open                # write to temp dir and open
    uv run python/cc_heatmap.py --json                # aggregates as JSON

LOG FORMAT:
    ### 2024-03-04 09:00-10:30 JST
    - いつ: 2024-03-04 09:00-10:30 JST（90分）
    - どこで: alpha
"""

from __future__ import annotations

import json
import os
import re
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Iterator

import click

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_WEEKS = 52
DEFAULT_LOG_DIR = Path.home() / "ops" / "proof-log"
LOG_SUFFIX = ".md"
OPEN_FILENAME = "cc-heatmap.html"

SESSION_HEADER = re.compile(r"^### (\d{4}-\d{2}-\d{2}) (\d{2}:\d{2})-(\d{2}:\d{2}) JST")
DURATION_LINE = re.compile(r"^- いつ: .+JST（(\d+)分）")
WHERE_LINE = re.compile(r"^- どこで: (.+)$")

# Upper bounds (exclusive) for levels 1-3; anything at or above the last is level 4
LEVEL_THRESHOLDS = (30, 120, 240)

# Dark GitHub palette, index = activity level
LEVEL_COLORS = ("#161b22", "#0e4429", "#006d32", "#26a641", "#39d353")

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

CELL = 13
GAP = 3
STEP = CELL + GAP


def log(message: str, verbose: bool = True, level: str = "INFO"):
    """Log message to stderr if verbose or if error."""
    if verbose or level == "ERROR":
        click.echo(f"[{level}] {message}", err=True)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Session:
    date: date | None  # None when the header names an impossible day
    start_time: str  # HH:MM
    end_time: str
    duration_minutes: int = 0
    project: str | None = None


@dataclass
class SessionDraft:
    """Fields of the session currently open in the parser."""

    date: date | None
    start_time: str
    end_time: str
    duration_minutes: int = 0
    project: str | None = None

    def freeze(self) -> Session:
        return Session(self.date, self.start_time, self.end_time, self.duration_minutes, self.project)


@dataclass
class DailyTotal:
    date: date
    minutes: int = 0
    projects: dict[str, int] = field(default_factory=dict)

    def add(self, session: Session) -> None:
        if session.duration_minutes <= 0:
            return
        self.minutes += session.duration_minutes
        if session.project:
            self.projects[session.project] = self.projects.get(session.project, 0) + session.duration_minutes

    @property
    def top_project(self) -> tuple[str, int] | None:
        return top_entry(self.projects)


@dataclass
class StreakState:
    running: int = 0
    longest: int = 0
    current: int = 0

    def advance(self, day: date, minutes: int, today: date) -> None:
        """Account for one day; days must be fed in chronological order.

        Zero-minute days reset the streak only once they are strictly in the
        past. Today and later days have not finished yet.
        """
        if minutes > 0:
            self.running += 1
            self.longest = max(self.longest, self.running)
            if day <= today:
                self.current = self.running
        elif day < today:
            self.running = 0
            self.current = 0


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date  # inclusive

    @classmethod
    def weeks_back(cls, weeks: int, today: date) -> DateRange:
        """Range from the Sunday on or before ``today - weeks`` up to today."""
        start = today - timedelta(weeks=weeks)
        start -= timedelta(days=sunday_index(start))
        return cls(start, today)

    def __iter__(self) -> Iterator[date]:
        day = self.start
        while day <= self.end:
            yield day
            day += timedelta(days=1)

    def __len__(self) -> int:
        return max((self.end - self.start).days + 1, 0)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end


@dataclass
class HeatmapStats:
    days: dict[date, DailyTotal] = field(default_factory=dict)
    total_minutes: int = 0
    active_days: int = 0
    longest_streak: int = 0
    current_streak: int = 0
    projects: dict[str, int] = field(default_factory=dict)
    top_project: tuple[str, int] | None = None
    days_tracked: int = 0


@dataclass
class Cell:
    date: date
    column: int
    row: int
    minutes: int
    level: int
    description: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def sunday_index(day: date) -> int:
    """Day of week with Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % 7


def top_entry(totals: dict[str, int]) -> tuple[str, int] | None:
    """Largest entry; on ties the first inserted key wins."""
    best: tuple[str, int] | None = None
    for name, minutes in totals.items():
        if best is None or minutes > best[1]:
            best = (name, minutes)
    return best


def activity_level(minutes: int) -> int:
    if minutes <= 0:
        return 0
    for level, bound in enumerate(LEVEL_THRESHOLDS, start=1):
        if minutes < bound:
            return level
    return len(LEVEL_THRESHOLDS) + 1


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def _today() -> date:
    return date.today()


# ---------------------------------------------------------------------------
# Stage 1: Parse proof-log files
# ---------------------------------------------------------------------------


class ParserState(Enum):
    IDLE = "idle"
    SESSION_OPEN = "session_open"


class ProofLogParser:
    """Line-driven state machine turning a proof-log into Session records.

    IDLE --header--> SESSION_OPEN --header--> SESSION_OPEN (previous emitted)
    SESSION_OPEN --duration/where--> SESSION_OPEN (fields updated)
    any --finish--> IDLE (open session emitted)

    Duration and location lines outside a session, and every other line,
    are ignored.
    """

    def __init__(self) -> None:
        self.state = ParserState.IDLE
        self.sessions: list[Session] = []
        self._draft: SessionDraft | None = None

    def feed(self, raw_line: str) -> None:
        line = raw_line.strip()

        header = SESSION_HEADER.match(line)
        if header:
            self._flush()
            try:
                day = date.fromisoformat(header.group(1))
            except ValueError:
                day = None
            self._draft = SessionDraft(day, header.group(2), header.group(3))
            self.state = ParserState.SESSION_OPEN
            return

        if self._draft is None:
            return

        duration = DURATION_LINE.match(line)
        if duration:
            self._draft.duration_minutes = int(duration.group(1))
            return

        where = WHERE_LINE.match(line)
        if where:
            self._draft.project = where.group(1).strip() or None

    def finish(self) -> list[Session]:
        self._flush()
        return self.sessions

    def _flush(self) -> None:
        if self._draft is not None:
            self.sessions.append(self._draft.freeze())
        self._draft = None
        self.state = ParserState.IDLE


def parse_proof_log(content: str) -> list[Session]:
    """Parse one day's proof-log text into sessions, in file order."""
    parser = ProofLogParser()
    # Only "\n" ends a line; strip() in feed() takes care of "\r"
    for line in content.split("\n"):
        parser.feed(line)
    return parser.finish()


def load_sessions_by_date(
    log_dir: Path,
    date_range: DateRange,
    verbose: bool = False,
) -> dict[date, list[Session]]:
    """Read ``<log_dir>/<YYYY-MM-DD>.md`` for every date in the range.

    Dates without a file are left out. Files that fail to read are skipped
    and treated as days without activity. Invalid UTF-8 bytes are replaced,
    not fatal.
    """
    found: dict[date, list[Session]] = {}
    skipped = 0

    for day in date_range:
        path = log_dir / f"{day.isoformat()}{LOG_SUFFIX}"
        if not path.is_file():
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            skipped += 1
            log(f"Skipping unreadable log {path}: {e}", verbose, "WARN")
            continue
        found[day] = parse_proof_log(content)

    if verbose:
        n_sessions = sum(len(s) for s in found.values())
        log(f"Read {len(found)} log files ({n_sessions} sessions), skipped {skipped}", verbose)
    return found


# ---------------------------------------------------------------------------
# Stage 2: Aggregate
# ---------------------------------------------------------------------------


def aggregate(
    date_range: DateRange,
    sessions_by_date: dict[date, list[Session]],
    today: date,
) -> HeatmapStats:
    """Sum minutes per day and project and track streaks in one forward pass."""
    stats = HeatmapStats(days_tracked=len(date_range))
    streak = StreakState()

    for day in date_range:
        total = DailyTotal(day)
        for session in sessions_by_date.get(day, ()):
            total.add(session)
        stats.days[day] = total

        if total.minutes > 0:
            stats.total_minutes += total.minutes
            stats.active_days += 1
        for project, minutes in total.projects.items():
            stats.projects[project] = stats.projects.get(project, 0) + minutes

        streak.advance(day, total.minutes, today)

    stats.longest_streak = streak.longest
    stats.current_streak = streak.current
    stats.top_project = top_entry(stats.projects)
    return stats


def stats_to_dict(date_range: DateRange, stats: HeatmapStats) -> dict:
    """JSON-friendly view of the aggregates."""
    top = stats.top_project
    return {
        "range": {"start": date_range.start.isoformat(), "end": date_range.end.isoformat()},
        "total_minutes": stats.total_minutes,
        "active_days": stats.active_days,
        "longest_streak": stats.longest_streak,
        "current_streak": stats.current_streak,
        "days_tracked": stats.days_tracked,
        "top_project": {"name": top[0], "minutes": top[1]} if top else None,
        "projects": stats.projects,
        "days": [
            {
                "date": day.isoformat(),
                "minutes": total.minutes,
                "level": activity_level(total.minutes),
                "projects": total.projects,
            }
            for day, total in stats.days.items()
        ],
    }


# ---------------------------------------------------------------------------
# Stage 3: Build HTML report
# ---------------------------------------------------------------------------


def html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def describe_day(total: DailyTotal) -> str:
    """Tooltip text: the date, then hours and top project when active."""
    if total.minutes <= 0:
        return total.date.isoformat()
    lines = [total.date.isoformat(), f"{total.minutes / 60:.1f}h AI time"]
    top = total.top_project
    if top:
        lines.append(top[0])
    return "\n".join(lines)


def layout_cells(date_range: DateRange, stats: HeatmapStats) -> list[Cell]:
    """One cell per day: row = weekday (Sunday first), column = week."""
    cells: list[Cell] = []
    column = 0
    for day in date_range:
        row = sunday_index(day)
        if row == 0 and cells:
            column += 1
        total = stats.days.get(day) or DailyTotal(day)
        cells.append(
            Cell(
                date=day,
                column=column,
                row=row,
                minutes=total.minutes,
                level=activity_level(total.minutes),
                description=describe_day(total),
            )
        )
    return cells


def month_labels(date_range: DateRange) -> list[tuple[int, str]]:
    """(column, month name) wherever a column's first day starts a new month."""
    labels: list[tuple[int, str]] = []
    prev_month = None
    column = 0
    for i, day in enumerate(date_range):
        if sunday_index(day) == 0 and i > 0:
            column += 1
        elif i > 0:
            continue
        if day.month != prev_month:
            labels.append((column, MONTH_NAMES[day.month - 1]))
            prev_month = day.month
    return labels


def render_svg(date_range: DateRange, stats: HeatmapStats) -> str:
    cells = layout_cells(date_range, stats)
    columns = (cells[-1].column + 1) if cells else 0
    width = columns * STEP
    height = 7 * STEP

    parts = []
    for column, label in month_labels(date_range):
        parts.append(
            f'<text x="{column * STEP}" y="-4" font-size="11" fill="#7d8590" '
            f'font-family="system-ui,sans-serif">{label}</text>'
        )
    for row, label in ((1, "Mon"), (3, "Wed"), (5, "Fri")):
        parts.append(
            f'<text x="-28" y="{row * STEP + CELL - 3}" font-size="10" fill="#7d8590" '
            f'font-family="system-ui,sans-serif">{label}</text>'
        )
    for c in cells:
        parts.append(
            f'<rect x="{c.column * STEP}" y="{c.row * STEP}" width="{CELL}" height="{CELL}" '
            f'rx="2" fill="{LEVEL_COLORS[c.level]}" data-date="{c.date.isoformat()}" '
            f'data-min="{c.minutes}" data-level="{c.level}">'
            f"<title>{html_escape(c.description)}</title></rect>"
        )

    body = "\n        ".join(parts)
    return (
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" '
        f'xmlns="http://www.w3.org/2000/svg" overflow="visible">\n'
        f"        {body}\n"
        f"      </svg>"
    )


def render_stats_strip(stats: HeatmapStats) -> str:
    items = [
        (format_duration(stats.total_minutes), "Total AI time"),
        (stats.active_days, "Active days"),
        (stats.longest_streak, "Longest streak"),
        (stats.current_streak, "Current streak"),
        (stats.days_tracked, "Days tracked"),
    ]
    return "\n".join(
        f'    <div class="stat">\n'
        f'      <div class="stat-n">{value}</div>\n'
        f'      <div class="stat-l">{label}</div>\n'
        f"    </div>"
        for value, label in items
    )


def build_html_report(
    date_range: DateRange,
    stats: HeatmapStats,
    weeks: int,
    generated: date,
    log_dir: Path,
) -> str:
    """Build the self-contained HTML report."""
    top = stats.top_project
    top_chip = ""
    if top:
        top_chip = (
            '<div class="top-project"><span class="top-project-dot"></span>'
            f"Most active project: <strong>{html_escape(top[0])} "
            f"({format_duration(top[1])})</strong></div>"
        )
    legend = "".join(
        f'<span class="legend-cell" style="background:{color}"></span>' for color in LEVEL_COLORS
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>AI Activity Heatmap</title>
  <style>
    * {{ box-sizing: border-box; margin: 0; padding: 0; }}
    body {{
      background: #0d1117;
      color: #e6edf3;
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', system-ui, sans-serif;
      min-height: 100vh;
      padding: 40px 24px;
    }}
    .container {{ max-width: 960px; margin: 0 auto; }}
    header {{ margin-bottom: 32px; }}
    .badge {{
      display: inline-block;
      background: rgba(57,211,83,0.1);
      color: #39d353;
      border: 1px solid rgba(57,211,83,0.3);
      border-radius: 20px;
      padding: 4px 12px;
      font-size: 0.75rem;
      font-weight: 600;
      letter-spacing: 0.05em;
      text-transform: uppercase;
      margin-bottom: 12px;
    }}
    h1 {{ font-size: 1.75rem; font-weight: 700; color: #f0f6fc; margin-bottom: 6px; }}
    .subtitle {{ color: #7d8590; font-size: 0.9rem; }}
    .stats-strip {{
      display: flex;
      gap: 24px;
      flex-wrap: wrap;
      margin-bottom: 32px;
      padding: 20px 24px;
      background: #161b22;
      border: 1px solid #30363d;
      border-radius: 12px;
    }}
    .stat {{ flex: 1; min-width: 120px; }}
    .stat-n {{ font-size: 1.8rem; font-weight: 700; color: #39d353; line-height: 1; }}
    .stat-l {{ font-size: 0.8rem; color: #7d8590; margin-top: 4px; }}
    .heatmap-wrap {{
      background: #161b22;
      border: 1px solid #30363d;
      border-radius: 12px;
      padding: 24px;
      overflow-x: auto;
      margin-bottom: 24px;
    }}
    .heatmap-inner {{ display: inline-block; }}
    svg {{ display: block; overflow: visible; margin: 20px 32px 8px 36px; }}
    .legend {{
      display: flex;
      align-items: center;
      gap: 6px;
      justify-content: flex-end;
      margin-top: 16px;
      font-size: 0.78rem;
      color: #7d8590;
    }}
    .legend-cell {{ display: inline-block; width: 12px; height: 12px; border-radius: 2px; }}
    .footer-note {{ text-align: center; color: #484f58; font-size: 0.78rem; margin-top: 24px; }}
    .footer-note code {{ background: #21262d; padding: 1px 5px; border-radius: 3px; font-size: 0.75em; }}
    .top-project {{
      display: inline-flex;
      align-items: center;
      gap: 8px;
      background: rgba(57,211,83,0.08);
      border: 1px solid rgba(57,211,83,0.2);
      border-radius: 8px;
      padding: 8px 14px;
      font-size: 0.85rem;
      margin-top: 12px;
    }}
    .top-project-dot {{ width: 8px; height: 8px; background: #39d353; border-radius: 50%; }}
    rect:hover {{ opacity: 0.85; cursor: default; }}
    @media (max-width: 600px) {{
      .stats-strip {{ gap: 16px; padding: 16px; }}
      .stat-n {{ font-size: 1.4rem; }}
    }}
  </style>
</head>
<body>
<div class="container">
  <header>
    <div class="badge">Claude Code Activity</div>
    <h1>AI Activity Heatmap</h1>
    <p class="subtitle">Last {weeks} weeks of autonomous AI development &middot; Generated {generated.isoformat()}</p>
    {top_chip}
  </header>

  <div class="stats-strip">
{render_stats_strip(stats)}
  </div>

  <div class="heatmap-wrap">
    <div class="heatmap-inner">
      {render_svg(date_range, stats)}
      <div class="legend">
        <span>Less</span>
        {legend}
        <span>More</span>
        <span style="margin-left:12px;color:#484f58">1 cell = 1 day &middot; hover for details</span>
      </div>
    </div>
  </div>

  <p class="footer-note">
    Generated by cc-heatmap {__version__} &middot; Reads from <code>{html_escape(str(log_dir))}</code>
  </p>
</div>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def write_stdout(text: str) -> None:
    """Write to stdout, exiting quietly if the reader has gone away."""
    try:
        click.echo(text, file=sys.stdout, nl=False)
        sys.stdout.flush()
    except BrokenPipeError:
        # Python flushes stdout again at shutdown; point it at devnull so that is silent too
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)


def write_file(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Cannot write {path}: {e}") from e


def open_in_viewer(path: Path, verbose: bool = False) -> None:
    """Hand the file to the platform's default viewer. Failures are not fatal."""
    try:
        code = click.launch(str(path))
    except OSError as e:
        log(f"Could not open {path}: {e}", verbose, "WARN")
        return
    if code:
        log(f"Viewer exited with status {code} for {path}", verbose, "WARN")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-w",
    "--weeks",
    type=click.IntRange(min=1),
    default=DEFAULT_WEEKS,
    show_default=True,
    help="Number of weeks to show",
)
@click.option(
    "-d",
    "--dir",
    "log_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=f"Proof-log directory (default: {DEFAULT_LOG_DIR})",
)
@click.option(
    "-o",
    "--out",
    "output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write output to file instead of stdout",
)
@click.option("--open", "open_browser", is_flag=True, help="Write to the temp dir and open in the default browser")
@click.option("--json", "as_json", is_flag=True, help="Output aggregated data as JSON instead of HTML")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr")
@click.version_option(version=__version__)
def main(
    weeks: int,
    log_dir: Path | None,
    output: Path | None,
    open_browser: bool,
    as_json: bool,
    verbose: bool,
):
    """Generate a GitHub-style AI activity heatmap from proof-log files.

    With no options the HTML report is written to stdout.
    """
    if as_json and open_browser:
        raise click.UsageError("--json cannot be combined with --open")

    log_dir = (log_dir or DEFAULT_LOG_DIR).expanduser()
    today = _today()
    date_range = DateRange.weeks_back(weeks, today)
    log(f"Range {date_range.start} .. {date_range.end} ({len(date_range)} days)", verbose)
    if not log_dir.is_dir():
        log(f"Log directory not found: {log_dir}", verbose, "WARN")

    sessions_by_date = load_sessions_by_date(log_dir, date_range, verbose)
    stats = aggregate(date_range, sessions_by_date, today)
    log(
        f"Total {format_duration(stats.total_minutes)}, {stats.active_days} active days, "
        f"streak {stats.current_streak} (longest {stats.longest_streak})",
        verbose,
    )

    if as_json:
        text = json.dumps(stats_to_dict(date_range, stats), indent=2, ensure_ascii=False) + "\n"
    else:
        text = build_html_report(date_range, stats, weeks, today, log_dir)

    if open_browser:
        path = Path(tempfile.gettempdir()) / OPEN_FILENAME
        write_file(path, text)
        open_in_viewer(path, verbose)
        click.echo(f"Opened: {path}", err=True)
    elif output is not None:
        path = output.expanduser()
        write_file(path, text)
        click.echo(f"Written: {path}", err=True)
    else:
        write_stdout(text)


if __name__ == "__main__":
    main()
