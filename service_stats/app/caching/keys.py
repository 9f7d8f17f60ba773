"""
Cache key templates shared by the preloader and the route handlers.

A route only gets a hit when it builds exactly the key the preloader wrote,
so both sides go through these helpers.
"""

DEPARTMENT_RANKINGS = "department_rankings"
POLITIQUE_RANKINGS = "politique_rankings"

DEPARTMENT_KEYS = {
    "details": "dept_details_{}",
    "crime": "dept_crime_{}",
    "crime_history": "dept_crime_history_{}",
    "names": "dept_names_{}",
    "names_history": "dept_names_history_{}",
    "prefet": "prefet_{}",
}

COUNTRY_KEYS = {
    "details": "country_details_{}",
    "crime": "country_crime_{}",
    "crime_history": "country_crime_history_{}",
    "names": "country_names_{}",
    "names_history": "country_names_history_{}",
    "ministre": "ministre_{}",
}


def department_key(view: str, dept: str) -> str:
    """Key for a per-department view, e.g. ``dept_details_2A``."""
    return DEPARTMENT_KEYS[view].format(dept)


def country_key(view: str, country: str) -> str:
    """Key for a whole-country view, e.g. ``country_crime_france``."""
    return COUNTRY_KEYS[view].format(country.lower())
