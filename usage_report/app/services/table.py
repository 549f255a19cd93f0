"""Heat-map table for the usage report, with HTML, CSV and Excel output.

A table is built from the matrix produced by ``aggregate_usage`` and then
filled with ``init_data`` (one row per module) or ``init_data_deanonymized``
(one row per module and user). In download mode cells hold plain names and
integers; otherwise they hold styled HTML.
"""

import csv
import io
import logging
from datetime import date, timedelta
from html import escape

from openpyxl import Workbook

from .buckets import window_days

log = logging.getLogger(__name__)

SECTION_ROW_CLASS = "report_usage-row"


class UsageTableStateError(RuntimeError):
    """Raised when a table is filled with the initializer for the other mode."""


def get_color_by_percentage(per: float) -> str:
    r = 255
    g = b = 255 - int(per * 125)
    return f"#{r:02x}{g:02x}{b:02x}"


def _fraction(value, maximum) -> float:
    return value / maximum if maximum else 0.0


def _cell(content, style: str = "padding: .5rem") -> str:
    return f"<div style='{style}'>{content}</div>"


class UsageTable:
    def __init__(
        self,
        course_id: int,
        start: date,
        end: date,
        data: dict,
        downloading: bool = False,
        deanonymize: bool = False,
    ):
        self.uniqueid = f"report_usage_{course_id}"
        self.course_id = course_id
        self.start = start
        self.end = end
        self.days = window_days(start, end)
        self.data = data
        self.downloading = downloading
        self.deanonymize = deanonymize
        self.rows: list[tuple[list, str | None]] = []

        self.columns = ["name"]
        headers = ["File"]
        if deanonymize:
            self.columns.append("person")
            headers.append("Person")

        for i in range(self.days + 1):
            day = start + timedelta(days=i)
            self.columns.append(day.strftime("%Y-%m-%d"))
            headers.append(day.strftime("%d.%m"))

        self.headers = headers if downloading else [_cell(h) for h in headers]

    def is_downloading(self) -> bool:
        return self.downloading

    def add_data(self, row: list, classname: str | None = None) -> None:
        self.rows.append((row, classname))

    def init_data(self, modules: dict[int, dict], sections: dict[int, str]) -> None:
        """Fill one heat-mapped row per module, grouped under section headers.

        Args:
            modules: contextid -> ``{"name", "url", "section"}``.
            sections: section number -> display name.
        """
        if self.deanonymize:
            raise UsageTableStateError("State mismatch.")

        maxima = {k: max(days.values(), default=0) for k, days in self.data.items()}
        biggest = max(maxima.values(), default=0)

        by_section: dict[int, list[list]] = {}
        for ctx, days in self.data.items():
            info = modules.get(ctx)
            if info is None:
                log.warning("No module info for context %s, leaving it out", ctx)
                continue

            if self.downloading:
                row = [info["name"]]
            else:
                color = get_color_by_percentage(_fraction(maxima[ctx], biggest))
                link = f"<a href='{escape(info['url'])}'>{escape(info['name'])}</a>"
                row = [_cell(link, f"background-color: {color}; padding:  0.5rem 0.5rem 0.5rem 1rem")]

            for amount in days.values():
                if self.downloading:
                    row.append(int(amount))
                else:
                    color = get_color_by_percentage(_fraction(amount, maxima[ctx]))
                    row.append(_cell(amount, f"background-color: {color}; padding: .5rem"))

            by_section.setdefault(info["section"], []).append(row)

        for section in sorted(by_section):
            if not self.downloading:
                name = sections.get(section) or f"Topic {section}"
                header = [_cell(escape(name), "padding: 0.25rem; font-weight: 300")]
                header += [""] * (self.days + 1)
                self.add_data(header, SECTION_ROW_CLASS)
            for row in by_section[section]:
                self.add_data(row)

    def init_data_deanonymized(self, modules: dict[int, dict], users: dict[int, dict]) -> None:
        """Fill one row per module and user with that user's daily amounts."""
        if not self.deanonymize:
            raise UsageTableStateError("State mismatch.")

        for ctx, per_user in self.data.items():
            info = modules.get(ctx)
            if info is None:
                log.warning("No module info for context %s, leaving it out", ctx)
                continue
            mod_html = _cell(
                f"<a href='{escape(info['url'])}'>{escape(info['name'])}</a>",
                "padding:  0.5rem 0.5rem 0.5rem 1rem",
            )

            for userid, days in per_user.items():
                user = users.get(userid) or {"name": f"User {userid}", "url": ""}
                if self.downloading:
                    row = [info["name"], user["name"]]
                    row += [int(amount) for amount in days.values()]
                else:
                    user_html = _cell(
                        f"<a href='{escape(user['url'])}'>{escape(user['name'])}</a>",
                        "padding:  0.5rem 0.5rem 0.5rem 1rem",
                    )
                    row = [mod_html, user_html]
                    row += [_cell(amount) for amount in days.values()]
                self.add_data(row)

    # --------------------------------------------------
    # Output
    # --------------------------------------------------
    def to_html(self) -> str:
        cell_style = "padding: 0; white-space: nowrap"
        out = [f"<table id='{self.uniqueid}' class='generaltable generalbox'>", "<thead><tr>"]
        for col, header in zip(self.columns, self.headers):
            out.append(f"<th class='{escape(col)}' style='{cell_style}'>{header}</th>")
        out.append("</tr></thead>")
        out.append("<tbody>")
        for row, classname in self.rows:
            out.append(f"<tr class='{classname}'>" if classname else "<tr>")
            for value in row:
                out.append(f"<td style='{cell_style}'>{value}</td>")
            out.append("</tr>")
        out.append("</tbody></table>")
        return "\n".join(out)

    def iter_rows(self):
        """Header row followed by data rows, section headers excluded."""
        yield list(self.headers)
        for row, classname in self.rows:
            if classname == SECTION_ROW_CLASS:
                continue
            yield row

    def to_csv(self) -> str:
        output = io.StringIO()
        writer = csv.writer(output)
        for row in self.iter_rows():
            writer.writerow(row)
        return output.getvalue()

    def to_xlsx(self) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = "Usage"
        for row in self.iter_rows():
            ws.append(row)
        output = io.BytesIO()
        wb.save(output)
        return output.getvalue()

    def filename(self, extension: str) -> str:
        return f"{self.uniqueid}_{self.start:%Y%m%d}_{self.end:%Y%m%d}.{extension}"
