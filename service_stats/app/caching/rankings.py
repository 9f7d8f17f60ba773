"""
Pure computations behind the two pre-aggregated ranking tables.

The SQL layer returns raw joined rows (see ``queries``); nationality shares
and population-weighted political aggregates are derived here so they can be
exercised without a database.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional

# Only these buckets may ever become keys of the political rankings table.
POLITICAL_FAMILIES = ("Gauche", "Centre", "Droite", "Extrême droite", "Autres")

NAT1_PREFIX = "nat1_"

# share name -> nationality count columns summed into it
NATIONALITY_SHARES: Dict[str, tuple] = OrderedDict([
    ("etrangers_pct", ("etrangers",)),
    ("francais_de_naissance_pct", ("francais_de_naissance",)),
    ("naturalises_pct", ("francais_par_acquisition",)),
    ("europeens_pct", (
        "portugais",
        "italiens",
        "espagnols",
        "autres_nationalites_de_l_ue",
        "autres_nationalites_d_europe",
    )),
    ("maghrebins_pct", ("algeriens", "marocains", "tunisiens", "turcs")),
    ("africains_pct", ("autres_nationalites_d_afrique",)),
    ("autres_nationalites_pct", ("autres_nationalites",)),
    ("non_europeens_pct", (
        "algeriens",
        "marocains",
        "tunisiens",
        "turcs",
        "autres_nationalites_d_afrique",
        "autres_nationalites",
    )),
])

WEIGHTED_METRICS = (
    "logements_sociaux_pct",
    "insecurite_score",
    "immigration_score",
    "islamisation_score",
    "defrancisation_score",
    "wokisme_score",
    "mosque_p100k",
    "pop_in_qpv_pct",
    "places_migrants_p1k",
    "total_score",
    "violences_physiques_p1k",
    "violences_sexuelles_p1k",
    "vols_p1k",
    "destructions_p1k",
    "stupefiants_p1k",
    "escroqueries_p1k",
    "total_subventions_par_hab",
) + tuple(NATIONALITY_SHARES.keys())


def _number(value: Any) -> float:
    """Coerce a database value (int, float, Decimal, None) to float."""
    if value is None:
        return 0.0
    return float(value)


def nationality_shares(counts: Mapping[str, Any]) -> Dict[str, float]:
    """
    Derive nationality percentages from a nationality count mapping.

    ``counts`` holds the raw columns (``ensemble``, ``etrangers``, ...). Each
    share is ``round(sum / ensemble * 100, 2)``; every share is 0 when the
    total is missing or zero.
    """
    total = _number(counts.get("ensemble"))
    shares: Dict[str, float] = {}
    for share, columns in NATIONALITY_SHARES.items():
        if total <= 0:
            shares[share] = 0
            continue
        subtotal = sum(_number(counts.get(column)) for column in columns)
        shares[share] = round(subtotal / total * 100, 2)
    return shares


def with_nationality_shares(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Replace the ``nat1_*`` count columns of a row by computed shares."""
    counts = {}
    result: Dict[str, Any] = {}
    for column, value in row.items():
        if column.startswith(NAT1_PREFIX):
            counts[column[len(NAT1_PREFIX):]] = value
        else:
            result[column] = value
    result.update(nationality_shares(counts))
    return result


def build_department_rankings(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Shape department ranking rows into the cached ``{data, total_count}`` payload."""
    data = [with_nationality_shares(row) for row in rows]
    return {"data": data, "total_count": len(data)}


def weighted_average(rows: List[Mapping[str, Any]], metric: str) -> Optional[float]:
    """
    Population-weighted mean of ``metric``: sum(metric * population) / sum(population).

    Rows without a population carry no weight and missing metric values add
    nothing to the numerator. Returns None when the total population is 0 or
    when no weighted row carries a value for ``metric``.
    """
    numerator = 0.0
    denominator = 0.0
    seen = False
    for row in rows:
        population = row.get("population")
        if population is None:
            continue
        weight = _number(population)
        denominator += weight
        value = row.get(metric)
        if value is not None:
            numerator += _number(value) * weight
            seen = True
    if denominator == 0 or not seen:
        return None
    return numerator / denominator


def _mean_population(rows: List[Mapping[str, Any]]) -> Optional[float]:
    populations = [_number(row["population"]) for row in rows if row.get("population") is not None]
    if not populations:
        return None
    return sum(populations) / len(populations)


def build_politique_rankings(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Aggregate commune rows per mayor political family.

    Rows whose ``famille_nuance`` is not one of ``POLITICAL_FAMILIES`` are
    discarded: the output never gains a key taken from unvetted data.
    """
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        family = row.get("famille_nuance")
        if family not in POLITICAL_FAMILIES:
            continue
        groups.setdefault(family, []).append(with_nationality_shares(row))

    result: Dict[str, Dict[str, Any]] = {}
    for family in POLITICAL_FAMILIES:
        members = groups.get(family)
        if not members:
            continue
        metrics: Dict[str, Any] = {"population": _mean_population(members)}
        for metric in WEIGHTED_METRICS:
            metrics[metric] = weighted_average(members, metric)
        result[family] = metrics
    return result


def sort_rankings(
    data: List[Mapping[str, Any]],
    sort: str,
    direction: str = "DESC",
) -> List[Mapping[str, Any]]:
    """
    Order department ranking rows by ``sort``; missing values rank as 0.

    Ties are broken on the department code, following the same direction.
    """
    descending = direction.upper() == "DESC"
    return sorted(
        data,
        key=lambda row: (_number(row.get(sort)), str(row.get("departement", ""))),
        reverse=descending,
    )
