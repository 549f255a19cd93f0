import logging
import re

from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..db import MOODLE_ENGINE
from ..config import MOODLE_DB_PREFIX, MOODLE_WWWROOT

log = logging.getLogger(__name__)

CONTEXT_COURSE = 50
CONTEXT_MODULE = 70

_MODNAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")


def _safe_fetch(conn, sql: str, params: dict):
    try:
        return conn.execute(text(sql), params).mappings().all()
    except SQLAlchemyError:
        log.exception("Query failed, returning no rows")
        return []


def _in_params(values, prefix: str):
    params = {}
    placeholders = []
    for i, v in enumerate(values):
        key = f"{prefix}{i}"
        placeholders.append(f":{key}")
        params[key] = v
    return ", ".join(placeholders), params


def _get_course_name(course_id: int):
    prefix = MOODLE_DB_PREFIX
    with MOODLE_ENGINE.connect() as conn:
        row = conn.execute(
            text(f"SELECT fullname FROM {prefix}course WHERE id = :cid"),
            {"cid": course_id},
        ).mappings().first()
    return row["fullname"] if row else None


def _get_course_context_id(course_id: int) -> int:
    prefix = MOODLE_DB_PREFIX
    with MOODLE_ENGINE.connect() as conn:
        row = conn.execute(
            text(
                f"""
                SELECT id FROM {prefix}context
                WHERE contextlevel = :level AND instanceid = :cid
                """
            ),
            {"level": CONTEXT_COURSE, "cid": course_id},
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="course_id not found")
    return int(row["id"])


def _get_parent_context_ids(context_id: int, include_self: bool = True) -> list[int]:
    prefix = MOODLE_DB_PREFIX
    with MOODLE_ENGINE.connect() as conn:
        row = conn.execute(
            text(f"SELECT path FROM {prefix}context WHERE id = :id"),
            {"id": context_id},
        ).mappings().first()
    # path is "/<system>/<category>/.../<self>"
    ids = [int(p) for p in (row["path"] or "").split("/") if p] if row else []
    if not ids or ids[-1] != context_id:
        ids.append(context_id)
    return ids if include_self else ids[:-1]


def _get_roles_in_course_for_select(course_context_id: int):
    prefix = MOODLE_DB_PREFIX
    in_ctx, params = _in_params(_get_parent_context_ids(course_context_id), "ctx")
    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT DISTINCT r.id AS id, r.shortname AS shortname
            FROM {prefix}role_assignments ra
            INNER JOIN {prefix}role r ON r.id = ra.roleid
            WHERE ra.contextid IN ({in_ctx})
            ORDER BY r.id
            """,
            params,
        )
    return [int(r["id"]) for r in rows], [r["shortname"] for r in rows]


def _get_sections(course_id: int):
    prefix = MOODLE_DB_PREFIX
    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT id, section, name
            FROM {prefix}course_sections
            WHERE course = :cid
            ORDER BY section
            """,
            {"cid": course_id},
        )
    return [
        {
            "id": int(r["id"]),
            "section": int(r["section"]),
            "name": r["name"] or f"Topic {int(r['section'])}",
        }
        for r in rows
    ]


def _get_sections_in_course_for_select(course_id: int):
    sections = _get_sections(course_id)
    return [s["id"] for s in sections], [s["name"] for s in sections]


def _get_section_names(course_id: int) -> dict[int, str]:
    return {s["section"]: s["name"] for s in _get_sections(course_id)}


def _get_gradecategories_in_course_for_select(course_id: int):
    prefix = MOODLE_DB_PREFIX
    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT gc.id AS id, gc.fullname AS fullname, gc.depth AS depth,
                   c.fullname AS course_name
            FROM {prefix}grade_categories gc
            LEFT JOIN {prefix}course c ON c.id = gc.courseid
            WHERE gc.courseid = :cid
            ORDER BY gc.path, gc.id
            """,
            {"cid": course_id},
        )
    ids, names = [], []
    for r in rows:
        name = r["fullname"]
        # the course's top category is stored as "?"
        if int(r["depth"] or 0) <= 1 or not name or name == "?":
            name = r["course_name"] or name
        ids.append(int(r["id"]))
        names.append(name)
    return ids, names


def _get_mods_in_sections(section_ids, course_id: int) -> list[int]:
    prefix = MOODLE_DB_PREFIX
    params = {"courseid": course_id, "level": CONTEXT_MODULE}
    section_filter = ""
    if section_ids:
        in_sections, section_params = _in_params(section_ids, "sec")
        section_filter = f" AND cm.section IN ({in_sections})"
        params.update(section_params)

    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT con.id AS id
            FROM {prefix}context con
            JOIN {prefix}course_modules cm ON con.instanceid = cm.id
            WHERE cm.course = :courseid
              AND con.contextlevel = :level{section_filter}
            ORDER BY con.id
            """,
            params,
        )
    return [int(r["id"]) for r in rows]


def _get_mods_in_gradecategories(gradecat_ids) -> list[int]:
    if not gradecat_ids:
        return []
    prefix = MOODLE_DB_PREFIX
    in_cats, params = _in_params(gradecat_ids, "gradecat")
    params["level"] = CONTEXT_MODULE
    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT DISTINCT con.id AS id
            FROM {prefix}grade_items gi
            JOIN {prefix}modules m ON gi.itemmodule = m.name
            JOIN {prefix}course_modules cm
              ON cm.module = m.id AND cm.instance = gi.iteminstance
            JOIN {prefix}context con ON con.instanceid = cm.id
            WHERE gi.categoryid IN ({in_cats})
              AND con.contextlevel = :level
            ORDER BY con.id
            """,
            params,
        )
    return [int(r["id"]) for r in rows]


def _get_data_from_course(
    course_id: int,
    course_context_id: int,
    roles,
    sections,
    gradecats,
    min_key: int,
    max_key: int,
    unique_users: bool = False,
    deanonymize: bool = False,
):
    prefix = MOODLE_DB_PREFIX

    mods = _get_mods_in_sections(sections, course_id)
    if not mods:
        # selected sections hold no modules
        return []

    user_col = "ul.userid AS userid, " if deanonymize else ""
    user_group = " ul.userid," if deanonymize else ""
    amount = "COUNT(ul.amount)" if unique_users else "SUM(ul.amount)"

    in_mods, params = _in_params(mods, "mod")
    params.update({"courseid": course_id, "mindate": min_key, "maxdate": max_key})

    filters = ""
    if roles:
        in_ctx, ctx_params = _in_params(_get_parent_context_ids(course_context_id), "con")
        in_roles, role_params = _in_params(roles, "role")
        # per context, a user counts under the lowest role id assigned there
        filters += f"""
              AND ul.userid IN (
                SELECT r.userid FROM (
                  SELECT userid, contextid, MIN(roleid) AS roleid
                  FROM {prefix}role_assignments
                  WHERE contextid IN ({in_ctx})
                  GROUP BY userid, contextid
                ) r
                WHERE r.roleid IN ({in_roles})
              )"""
        params.update(ctx_params)
        params.update(role_params)

    if gradecats:
        gradecat_mods = _get_mods_in_gradecategories(gradecats)
        if not gradecat_mods:
            return []
        in_gradecats, gradecat_params = _in_params(gradecat_mods, "gradecat")
        filters += f"\n              AND ul.contextid IN ({in_gradecats})"
        params.update(gradecat_params)

    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT MIN(ul.id) AS id, {user_col}ul.contextid AS contextid,
                   ul.yearcreated AS yearcreated, ul.monthcreated AS monthcreated,
                   ul.daycreated AS daycreated, {amount} AS amount
            FROM {prefix}logstore_usage_log ul
            WHERE ul.courseid = :courseid
              AND ul.yearcreated * 10000 + ul.monthcreated * 100 + ul.daycreated >= :mindate
              AND ul.yearcreated * 10000 + ul.monthcreated * 100 + ul.daycreated <= :maxdate
              AND ul.contextid IN ({in_mods}){filters}
            GROUP BY ul.contextid,{user_group} ul.yearcreated, ul.monthcreated, ul.daycreated
            ORDER BY ul.contextid, ul.yearcreated, ul.monthcreated, ul.daycreated
            """,
            params,
        )
    log.debug("course %s: %d usage rows between %s and %s", course_id, len(rows), min_key, max_key)
    return rows


def _get_recent_usage_rows(course_id: int, min_key: int):
    prefix = MOODLE_DB_PREFIX
    with MOODLE_ENGINE.connect() as conn:
        return _safe_fetch(
            conn,
            f"""
            SELECT MIN(id) AS id, contextid, yearcreated, monthcreated, daycreated,
                   SUM(amount) AS amount
            FROM {prefix}logstore_usage_log
            WHERE courseid = :cid
              AND yearcreated * 10000 + monthcreated * 100 + daycreated >= :mindate
            GROUP BY contextid, yearcreated, monthcreated, daycreated
            ORDER BY contextid
            """,
            {"cid": course_id, "mindate": min_key},
        )


def _get_module_info(context_ids, course_id: int) -> dict[int, dict]:
    if not context_ids:
        return {}
    prefix = MOODLE_DB_PREFIX
    in_ctx, params = _in_params(context_ids, "ctx")
    params.update({"courseid": course_id, "level": CONTEXT_MODULE})
    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT con.id AS contextid, cm.id AS cmid, cm.instance AS instance,
                   m.name AS modname, cs.section AS sectionnum
            FROM {prefix}context con
            JOIN {prefix}course_modules cm ON cm.id = con.instanceid
            JOIN {prefix}modules m ON m.id = cm.module
            LEFT JOIN {prefix}course_sections cs ON cs.id = cm.section
            WHERE con.contextlevel = :level
              AND cm.course = :courseid
              AND con.id IN ({in_ctx})
            """,
            params,
        )

        instances: dict[str, list[int]] = {}
        for r in rows:
            instances.setdefault(r["modname"], []).append(int(r["instance"]))

        # each module type keeps its instance names in its own table
        names: dict[tuple[str, int], str] = {}
        for modname, ids in instances.items():
            if not _MODNAME_RE.match(modname or ""):
                log.warning("Ignoring unexpected module name %r", modname)
                continue
            in_ids, id_params = _in_params(ids, "inst")
            for n in _safe_fetch(
                conn,
                f"SELECT id, name FROM {prefix}{modname} WHERE id IN ({in_ids})",
                id_params,
            ):
                names[(modname, int(n["id"]))] = n["name"]

    result = {}
    for r in rows:
        modname = r["modname"]
        cmid = int(r["cmid"])
        result[int(r["contextid"])] = {
            "cmid": cmid,
            "modname": modname,
            "name": names.get((modname, int(r["instance"]))) or f"{modname} {cmid}",
            "url": f"{MOODLE_WWWROOT}/mod/{modname}/view.php?id={cmid}",
            "section": int(r["sectionnum"] or 0),
        }
    return result


def _get_user_names(user_ids) -> dict[int, dict]:
    if not user_ids:
        return {}
    prefix = MOODLE_DB_PREFIX
    in_users, params = _in_params(user_ids, "u")
    with MOODLE_ENGINE.connect() as conn:
        rows = _safe_fetch(
            conn,
            f"""
            SELECT id, firstname, lastname
            FROM {prefix}user
            WHERE id IN ({in_users})
            """,
            params,
        )
    return {
        int(r["id"]): {
            "name": f"{r['firstname'] or ''} {r['lastname'] or ''}".strip(),
            "url": f"{MOODLE_WWWROOT}/user/view.php?id={int(r['id'])}",
        }
        for r in rows
    }
