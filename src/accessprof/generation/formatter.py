import html
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from accessprof.capture.report import Report

HEADER = (
    "STATUS", "METHOD", "PATH", "COUNT",
    "MIN", "MAX", "SUM", "AVG",
    "MIN(BODY)", "MAX(BODY)", "SUM(BODY)", "AVG(BODY)",
)

_NUMERIC = re.compile(r"-?\d+(\.\d+)?")

_SECOND = 1_000_000_000
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE


def _fraction(value: int, unit: int) -> str:
    whole, rem = divmod(value, unit)
    if not rem:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{rem:0{digits}d}".rstrip("0")


def format_duration(ns: int) -> str:
    """Render nanoseconds the way Go prints a time.Duration (e.g. 2.246µs, 1m30s)."""
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_fraction(ns, 1_000)}µs"
    if ns < _SECOND:
        return f"{sign}{_fraction(ns, 1_000_000)}ms"

    hours, rem = divmod(ns, _HOUR)
    minutes, rem = divmod(rem, _MINUTE)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{_fraction(rem, _SECOND)}s"


def report_rows(report: "Report") -> list[list[str]]:
    """One row of display cells per segment, in report order."""
    return [
        [
            str(seg.status),
            seg.method,
            seg.aggregation_path,
            str(seg.count),
            format_duration(seg.min_response_time_ns),
            format_duration(seg.max_response_time_ns),
            format_duration(seg.sum_response_time_ns),
            format_duration(seg.avg_response_time_ns),
            str(seg.min_body_size),
            str(seg.max_body_size),
            str(seg.sum_body_size),
            f"{seg.avg_body_size:.3f}",
        ]
        for seg in report.segments
    ]


def _center(text: str, width: int) -> str:
    left = (width - len(text)) // 2
    return (" " * left + text).ljust(width)


def render_table(report: "Report") -> str:
    rows = report_rows(report)
    widths = [
        max([len(title)] + [len(row[i]) for row in rows])
        for i, title in enumerate(HEADER)
    ]

    def line(cells: list[str]) -> str:
        return "| " + " | ".join(cells) + " |"

    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    out = [border, line([_center(t, w) for t, w in zip(HEADER, widths)]), border]
    for row in rows:
        out.append(line([
            cell.rjust(w) if _NUMERIC.fullmatch(cell) else cell.ljust(w)
            for cell, w in zip(row, widths)
        ]))
    out.append(border)
    return "\n".join(out) + "\n"


_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8">
    <title>accessprof</title>
    <style>
      table {{ border-collapse: collapse; }}
      th, td {{ border: 1px solid #ccc; padding: 2px 8px; }}
      td.num {{ text-align: right; }}
    </style>
    <script>
      function resetLogs(reportPath) {{
        fetch(reportPath, {{method: "DELETE"}})
          .then(function (resp) {{
            if (!resp.ok) {{ throw new Error(resp.status); }}
            alert("OK");
            location.reload();
          }})
          .catch(function () {{ alert("Failed to reset logs"); }});
      }}
    </script>
  </head>
  <body>
    <p>Got {total} requests (Since {since})</p>
    <table id="profile-table">
      <thead>
        <tr>{header}</tr>
      </thead>
      <tbody>
{rows}
      </tbody>
    </table>
    <form action="{report_path}" method="get">
      <input type="text" name="agg" placeholder="/users/\\d+,/.*\\.png" value="{aggregates}">
      <input type="submit" value="Go">
    </form>
    <button type="button" data-report-path="{report_path}" onclick="resetLogs(this.dataset.reportPath)">Reset</button>
  </body>
</html>
"""


def render_html(report: "Report", report_path: str) -> str:
    """Full HTML page for a report, with a pattern form and a reset button."""
    header = "".join(f"<th>{html.escape(title)}</th>" for title in HEADER)
    rows = []
    for row in report_rows(report):
        cells = "".join(
            f'<td class="num">{html.escape(cell)}</td>' if _NUMERIC.fullmatch(cell)
            else f"<td>{html.escape(cell)}</td>"
            for cell in row
        )
        rows.append(f"        <tr>{cells}</tr>")
    since = report.since.isoformat() if report.since else "-"
    return _HTML_TEMPLATE.format(
        total=report.total_count,
        since=html.escape(since),
        header=header,
        rows="\n".join(rows),
        report_path=html.escape(report_path),
        aggregates=html.escape(",".join(p.pattern for p in report.patterns)),
    )
