import logging
from datetime import date, timedelta

from fastapi import HTTPException

from ..config import USAGE_ALLOW_DEANONYMIZE, USAGE_DEFAULT_DAYS, USAGE_TIMEZONE
from ..routers.common import (
    _get_course_context_id,
    _get_course_name,
    _get_data_from_course,
    _get_gradecategories_in_course_for_select,
    _get_mods_in_sections,
    _get_module_info,
    _get_recent_usage_rows,
    _get_roles_in_course_for_select,
    _get_section_names,
    _get_sections_in_course_for_select,
    _get_user_names,
)
from .aggregate import aggregate_usage, max_amount
from .buckets import ReportWindow, date_key, today
from .table import UsageTable

log = logging.getLogger(__name__)


def resolve_window(start: date | None, end: date | None) -> ReportWindow:
    end = end or today(USAGE_TIMEZONE)
    try:
        if start is None:
            return ReportWindow.last_days(USAGE_DEFAULT_DAYS, end=end)
        return ReportWindow(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _check_deanonymize(deanonymize: bool) -> None:
    if deanonymize and not USAGE_ALLOW_DEANONYMIZE:
        raise HTTPException(status_code=403, detail="per-user usage is disabled")


def get_processed_data_from_course(
    course_id: int,
    roles,
    sections,
    gradecats,
    window: ReportWindow,
    unique_users: bool = False,
    deanonymize: bool = False,
):
    course_context_id = _get_course_context_id(course_id)
    rows = _get_data_from_course(
        course_id,
        course_context_id,
        roles,
        sections,
        gradecats,
        window.min_key,
        window.max_key,
        unique_users=unique_users,
        deanonymize=deanonymize,
    )
    # modules deleted after their usage was logged drop out here
    live_contexts = set(_get_mods_in_sections(None, course_id))
    return aggregate_usage(rows, window, live_contexts, deanonymize=deanonymize)


def get_usage_data(
    course_id: int,
    roles=None,
    sections=None,
    gradecats=None,
    start: date | None = None,
    end: date | None = None,
    unique_users: bool = False,
    deanonymize: bool = False,
):
    _check_deanonymize(deanonymize)
    window = resolve_window(start, end)
    data = get_processed_data_from_course(
        course_id, roles, sections, gradecats, window, unique_users, deanonymize
    )
    modules = _get_module_info(list(data.keys()), course_id)
    users = {}
    if deanonymize:
        users = _get_user_names(sorted({uid for per_user in data.values() for uid in per_user}))

    items = []
    for ctx, values in data.items():
        info = modules.get(ctx, {})
        item = {
            "contextId": ctx,
            "name": info.get("name"),
            "url": info.get("url"),
            "section": info.get("section"),
        }
        if deanonymize:
            item["users"] = [
                {
                    "userId": uid,
                    "name": users.get(uid, {}).get("name"),
                    "counts": list(days.values()),
                }
                for uid, days in values.items()
            ]
        else:
            item["counts"] = list(values.values())
        items.append(item)

    return {
        "courseId": course_id,
        "courseName": _get_course_name(course_id),
        "window": {
            "start": window.start.isoformat(),
            "end": window.end.isoformat(),
            "days": window.days + 1,
        },
        "dates": [d.isoformat() for d in window.dates()],
        "uniqueUsers": unique_users,
        "deanonymized": deanonymize,
        "maxAmount": None if deanonymize else max_amount(data),
        "modules": items,
    }


def build_usage_table(
    course_id: int,
    roles=None,
    sections=None,
    gradecats=None,
    start: date | None = None,
    end: date | None = None,
    unique_users: bool = False,
    deanonymize: bool = False,
    downloading: bool = False,
) -> UsageTable:
    _check_deanonymize(deanonymize)
    window = resolve_window(start, end)
    data = get_processed_data_from_course(
        course_id, roles, sections, gradecats, window, unique_users, deanonymize
    )
    table = UsageTable(
        course_id, window.start, window.end, data, downloading=downloading, deanonymize=deanonymize
    )
    modules = _get_module_info(list(data.keys()), course_id)
    if deanonymize:
        user_ids = sorted({uid for per_user in data.values() for uid in per_user})
        table.init_data_deanonymized(modules, _get_user_names(user_ids))
    else:
        table.init_data(modules, _get_section_names(course_id))
    log.info("course %s: usage table with %d rows", course_id, len(table.rows))
    return table


def get_usage_filters(course_id: int):
    course_context_id = _get_course_context_id(course_id)
    role_ids, role_names = _get_roles_in_course_for_select(course_context_id)
    section_ids, section_names = _get_sections_in_course_for_select(course_id)
    gradecat_ids, gradecat_names = _get_gradecategories_in_course_for_select(course_id)
    return {
        "courseId": course_id,
        "roles": [{"id": i, "name": n} for i, n in zip(role_ids, role_names)],
        "sections": [{"id": i, "name": n} for i, n in zip(section_ids, section_names)],
        "gradeCategories": [{"id": i, "name": n} for i, n in zip(gradecat_ids, gradecat_names)],
        "deanonymizeAllowed": USAGE_ALLOW_DEANONYMIZE,
    }


def get_recent_usage(course_id: int, days: int = 7):
    """Sparse usage since ``days`` ago, keyed by offset from that day.

    Unlike the main report there is no zero fill and no upper bound: rows
    dated after today keep their offsets past the last day.
    """
    _get_course_context_id(course_id)
    since = today(USAGE_TIMEZONE) - timedelta(days=days)
    window = ReportWindow(since, since + timedelta(days=days))

    usage: dict[int, dict[int, int]] = {}
    for r in _get_recent_usage_rows(course_id, date_key(since)):
        offset = window.offset_of(r["yearcreated"], r["monthcreated"], r["daycreated"])
        usage.setdefault(int(r["contextid"]), {})[offset] = int(r["amount"] or 0)

    return {
        "courseId": course_id,
        "since": since.isoformat(),
        "maxAmount": max_amount(usage),
        "usage": usage,
    }
