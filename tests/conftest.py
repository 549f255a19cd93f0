import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from usage_report.app.routers import common

SCHEMA = [
    "CREATE TABLE mdl_course (id INTEGER PRIMARY KEY, fullname TEXT)",
    "CREATE TABLE mdl_context (id INTEGER PRIMARY KEY, contextlevel INTEGER, instanceid INTEGER, path TEXT)",
    "CREATE TABLE mdl_modules (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE mdl_course_modules (id INTEGER PRIMARY KEY, course INTEGER, module INTEGER, instance INTEGER, section INTEGER)",
    "CREATE TABLE mdl_course_sections (id INTEGER PRIMARY KEY, course INTEGER, section INTEGER, name TEXT)",
    "CREATE TABLE mdl_page (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE mdl_forum (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE mdl_quiz (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE mdl_role (id INTEGER PRIMARY KEY, shortname TEXT)",
    "CREATE TABLE mdl_role_assignments (id INTEGER PRIMARY KEY, roleid INTEGER, contextid INTEGER, userid INTEGER)",
    "CREATE TABLE mdl_user (id INTEGER PRIMARY KEY, firstname TEXT, lastname TEXT)",
    "CREATE TABLE mdl_grade_categories (id INTEGER PRIMARY KEY, courseid INTEGER, fullname TEXT, depth INTEGER, path TEXT)",
    "CREATE TABLE mdl_grade_items (id INTEGER PRIMARY KEY, courseid INTEGER, categoryid INTEGER, itemmodule TEXT, iteminstance INTEGER)",
    """CREATE TABLE mdl_logstore_usage_log (
        id INTEGER PRIMARY KEY, userid INTEGER, contextid INTEGER, courseid INTEGER,
        yearcreated INTEGER, monthcreated INTEGER, daycreated INTEGER, amount INTEGER)""",
]

SEED = {
    "mdl_course": [(2, "Biology 101"), (3, "Chemistry")],
    "mdl_context": [
        (1, 10, 0, "/1"),
        (3, 40, 1, "/1/3"),
        (20, 50, 2, "/1/3/20"),
        (30, 50, 3, "/1/3/30"),
        (101, 70, 11, "/1/3/20/101"),
        (102, 70, 12, "/1/3/20/102"),
        (103, 70, 13, "/1/3/20/103"),
        # module 14 was deleted, its context was not
        (104, 70, 14, "/1/3/20/104"),
    ],
    "mdl_modules": [(1, "page"), (2, "forum"), (3, "quiz")],
    "mdl_course_modules": [
        (11, 2, 1, 1, 201),
        (12, 2, 2, 1, 202),
        (13, 2, 3, 1, 202),
    ],
    "mdl_course_sections": [
        (201, 2, 0, None),
        (202, 2, 1, "Week 1"),
        (203, 2, 2, ""),
    ],
    "mdl_page": [(1, "Syllabus")],
    "mdl_forum": [(1, "Announcements")],
    "mdl_quiz": [(1, "Quiz 1")],
    "mdl_role": [(1, "manager"), (3, "editingteacher"), (5, "student")],
    "mdl_role_assignments": [
        (1, 5, 20, 7),
        (2, 5, 20, 8),
        (3, 3, 20, 9),
        (4, 5, 20, 9),
        (5, 1, 3, 10),
    ],
    "mdl_user": [
        (7, "Ada", "Lovelace"),
        (8, "Alan", "Turing"),
        (9, "Grace", "Hopper"),
        (10, "Edsger", "Dijkstra"),
    ],
    "mdl_grade_categories": [
        (50, 2, "?", 1, "/50/"),
        (51, 2, "Assessments", 2, "/50/51/"),
    ],
    "mdl_grade_items": [
        (1, 2, 51, "quiz", 1),
        (2, 2, 50, "forum", 1),
    ],
    "mdl_logstore_usage_log": [
        (1, 7, 101, 2, 2024, 3, 1, 3),
        (2, 8, 101, 2, 2024, 3, 1, 2),
        (3, 7, 101, 2, 2024, 3, 3, 1),
        (4, 7, 102, 2, 2024, 3, 2, 4),
        (5, 9, 103, 2, 2024, 3, 2, 6),
        (6, 7, 104, 2, 2024, 3, 1, 9),
        (7, 7, 101, 2, 2024, 2, 28, 5),
        (8, 7, 101, 2, 2024, 3, 4, 5),
        (9, 10, 102, 2, 2024, 3, 3, 2),
    ],
}


@pytest.fixture
def moodle_engine(monkeypatch):
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))
        for table, rows in SEED.items():
            for row in rows:
                placeholders = ", ".join(f":p{i}" for i in range(len(row)))
                conn.execute(
                    text(f"INSERT INTO {table} VALUES ({placeholders})"),
                    {f"p{i}": v for i, v in enumerate(row)},
                )
    monkeypatch.setattr(common, "MOODLE_ENGINE", engine)
    yield engine
    engine.dispose()
