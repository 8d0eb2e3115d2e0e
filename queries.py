"""
Builders for MongoDB filter expressions used by the student and book
routes.

Every function here is pure: it only assembles dictionaries from its
arguments and never touches the database, so the same parameters always
produce the same filter.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

Filter = Dict[str, Any]

DEFAULT_MIN_AGE = 0
DEFAULT_MAX_AGE = 100
DEFAULT_COURSES = ["MERN Stack", "Python Development"]
ADVANCED_SEARCH_COURSES = ["MERN Stack", "Python Development", "Data Science"]


def exact_match(field: str, value: Any) -> Filter:
    return {field: value}


def range_filter(field: str, lower: Optional[Any] = None, upper: Optional[Any] = None, inclusive: bool = False) -> Filter:
    """Bound ``field`` from below and/or above.

    Strict (``$gt``/``$lt``) by default, closed (``$gte``/``$lte``) when
    ``inclusive`` is set.  A missing bound is simply left out.
    """
    low_op, high_op = ("$gte", "$lte") if inclusive else ("$gt", "$lt")
    bounds = {}
    if lower is not None:
        bounds[low_op] = lower
    if upper is not None:
        bounds[high_op] = upper
    return {field: bounds}


def age_range(min_age: Optional[int] = None, max_age: Optional[int] = None) -> Filter:
    """Students strictly older than ``min_age`` and younger than ``max_age``."""
    return range_filter(
        "age",
        DEFAULT_MIN_AGE if min_age is None else min_age,
        DEFAULT_MAX_AGE if max_age is None else max_age,
    )


def parse_course_list(courses: Optional[str]) -> List[str]:
    """Split a comma separated ``courses`` parameter.

    Falls back to ``DEFAULT_COURSES`` when the parameter is absent or
    holds nothing but separators.
    """
    if courses is None:
        return list(DEFAULT_COURSES)
    parsed = [c.strip() for c in courses.split(",") if c.strip()]
    return parsed or list(DEFAULT_COURSES)


def set_membership(field: str, values: Iterable[Any]) -> Filter:
    return {field: {"$in": list(values)}}


def all_of(*predicates: Filter) -> Filter:
    return {"$and": list(predicates)}


def any_of(*predicates: Filter) -> Filter:
    return {"$or": list(predicates)}


def exists_non_empty(field: str) -> Filter:
    return {field: {"$exists": True, "$ne": ""}}


def complex_query(query_type: Optional[str]) -> Tuple[Filter, str]:
    """Return ``(filter, description)`` for one of the demo query types."""
    if query_type == "and":
        return (
            all_of(range_filter("age", 22, 25, inclusive=True), exact_match("course", "MERN Stack")),
            "Students aged 22-25 AND enrolled in MERN Stack",
        )
    if query_type == "or":
        return (
            any_of(exact_match("status", "completed"), range_filter("age", lower=24)),
            "Students either completed OR aged above 24",
        )
    if query_type == "exists":
        return exists_non_empty("email"), "Students who have email field"
    return {}, "All students"


def advanced_search() -> Filter:
    """Aged 20-25, in one of the advanced-search courses, with an email, enrolled or completed."""
    return all_of(
        range_filter("age", 20, 25, inclusive=True),
        set_membership("course", ADVANCED_SEARCH_COURSES),
        exists_non_empty("email"),
        any_of(exact_match("status", "enrolled"), exact_match("status", "completed")),
    )


def category_match(category: str) -> Filter:
    # Escaped so user input is matched literally.
    return {"category": {"$regex": re.escape(category), "$options": "i"}}
