from datetime import date

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import HTMLResponse, Response, StreamingResponse

from ..services.usage_service import (
    build_usage_table,
    get_recent_usage,
    get_usage_data,
    get_usage_filters,
)

router = APIRouter(prefix="/report/usage", tags=["usage"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/data")
def usage_data(
    course_id: int = Query(..., description="Moodle course id"),
    start: date | None = Query(None, description="First day of the report"),
    end: date | None = Query(None, description="Last day of the report"),
    roles: list[int] = Query([], description="Only users with these role ids"),
    sections: list[int] = Query([], description="Only modules in these section ids"),
    gradecats: list[int] = Query([], description="Only modules in these grade categories"),
    unique_users: bool = Query(False, description="Count users instead of views"),
    deanonymize: bool = Query(False, description="Split counts per user"),
):
    return get_usage_data(
        course_id, roles, sections, gradecats, start, end, unique_users, deanonymize
    )


@router.get("/table", response_class=HTMLResponse)
def usage_table(
    course_id: int = Query(..., description="Moodle course id"),
    start: date | None = Query(None),
    end: date | None = Query(None),
    roles: list[int] = Query([]),
    sections: list[int] = Query([]),
    gradecats: list[int] = Query([]),
    unique_users: bool = Query(False),
    deanonymize: bool = Query(False),
):
    table = build_usage_table(
        course_id, roles, sections, gradecats, start, end, unique_users, deanonymize
    )
    return table.to_html()


@router.get("/download")
def usage_download(
    course_id: int = Query(..., description="Moodle course id"),
    format: str = Query("csv", description="csv or xlsx"),
    start: date | None = Query(None),
    end: date | None = Query(None),
    roles: list[int] = Query([]),
    sections: list[int] = Query([]),
    gradecats: list[int] = Query([]),
    unique_users: bool = Query(False),
    deanonymize: bool = Query(False),
):
    if format not in ("csv", "xlsx"):
        raise HTTPException(status_code=400, detail="format must be csv or xlsx")

    table = build_usage_table(
        course_id,
        roles,
        sections,
        gradecats,
        start,
        end,
        unique_users,
        deanonymize,
        downloading=True,
    )
    headers = {"Content-Disposition": f"attachment; filename={table.filename(format)}"}
    if format == "xlsx":
        return Response(content=table.to_xlsx(), media_type=XLSX_MEDIA_TYPE, headers=headers)
    return StreamingResponse(iter([table.to_csv()]), media_type="text/csv", headers=headers)


@router.get("/filters")
def usage_filters(course_id: int = Query(..., description="Moodle course id")):
    return get_usage_filters(course_id)


@router.get("/recent")
def usage_recent(
    course_id: int = Query(..., description="Moodle course id"),
    days: int = Query(7, ge=1, le=366, description="Days to look back"),
):
    return get_recent_usage(course_id, days)
