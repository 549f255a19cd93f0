from datetime import date
from html import escape

from fastapi import APIRouter, Query
from fastapi.responses import HTMLResponse

from ..services.usage_service import build_usage_table, get_usage_filters, resolve_window

router = APIRouter()

_STYLE = """
    <style>
      body { font-family: Arial, sans-serif; margin: 24px; background: #f7f7f7; }
      .card { background: white; padding: 16px; margin-bottom: 16px; border-radius: 8px; box-shadow: 0 1px 4px rgba(0,0,0,0.08); overflow-x: auto; }
      h1 { margin-top: 0; }
      label { display: inline-block; width: 160px; vertical-align: top; }
      input, select { padding: 6px 8px; margin: 4px 0; }
      button { padding: 8px 12px; margin-right: 8px; cursor: pointer; }
      table.generaltable { border-collapse: collapse; }
      tr.report_usage-row td { background: #f0f0f0; }
    </style>
"""


def _page(title: str, body: str) -> str:
    return f"""
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{escape(title)}</title>
    {_STYLE}
  </head>
  <body>
    <h1>{escape(title)}</h1>
    {body}
  </body>
</html>
"""


def _select(name: str, options: list[dict], selected: list[int]) -> str:
    items = "".join(
        f"<option value='{o['id']}'{' selected' if o['id'] in selected else ''}>{escape(str(o['name']))}</option>"
        for o in options
    )
    return f"<select name='{name}' multiple size='4'>{items}</select>"


@router.get("/", response_class=HTMLResponse)
def usage_ui_index():
    return _page(
        "Course usage",
        """
    <div class="card">
      <form method="get" action="/ui/usage">
        <label>Course ID</label>
        <input name="course_id" type="number" value="2" />
        <button type="submit">Show report</button>
      </form>
    </div>
""",
    )


@router.get("/ui/usage", response_class=HTMLResponse)
def usage_ui(
    course_id: int = Query(..., description="Moodle course id"),
    start: date | None = Query(None),
    end: date | None = Query(None),
    roles: list[int] = Query([]),
    sections: list[int] = Query([]),
    gradecats: list[int] = Query([]),
    unique_users: bool = Query(False),
    deanonymize: bool = Query(False),
):
    filters = get_usage_filters(course_id)
    window = resolve_window(start, end)
    table = build_usage_table(
        course_id, roles, sections, gradecats, window.start, window.end, unique_users, deanonymize
    )

    deanonymize_field = ""
    if filters["deanonymizeAllowed"]:
        checked = " checked" if deanonymize else ""
        deanonymize_field = f"""
        <div><label>Per user</label><input name="deanonymize" type="checkbox" value="true"{checked} /></div>"""

    download = (
        f"/report/usage/download?course_id={course_id}"
        f"&start={window.start.isoformat()}&end={window.end.isoformat()}"
        + "".join(f"&roles={r}" for r in roles)
        + "".join(f"&sections={s}" for s in sections)
        + "".join(f"&gradecats={g}" for g in gradecats)
        + ("&unique_users=true" if unique_users else "")
        + ("&deanonymize=true" if deanonymize else "")
    )

    body = f"""
    <div class="card">
      <form method="get" action="/ui/usage">
        <input name="course_id" type="hidden" value="{course_id}" />
        <div><label>From</label><input name="start" type="date" value="{window.start.isoformat()}" /></div>
        <div><label>To</label><input name="end" type="date" value="{window.end.isoformat()}" /></div>
        <div><label>Roles</label>{_select("roles", filters["roles"], roles)}</div>
        <div><label>Sections</label>{_select("sections", filters["sections"], sections)}</div>
        <div><label>Grade categories</label>{_select("gradecats", filters["gradeCategories"], gradecats)}</div>
        <div><label>Unique users</label><input name="unique_users" type="checkbox" value="true"{" checked" if unique_users else ""} /></div>{deanonymize_field}
        <div style="margin-top:8px;"><button type="submit">Filter</button></div>
      </form>
    </div>
    <div class="card">
      {table.to_html()}
      <div style="margin-top:8px;">
        <a href="{escape(download)}&format=csv">Download CSV</a> |
        <a href="{escape(download)}&format=xlsx">Download Excel</a>
      </div>
    </div>
"""
    return _page(f"Course usage: course {course_id}", body)
