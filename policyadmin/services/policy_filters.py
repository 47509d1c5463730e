# policyadmin/services/policy_filters.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple


@dataclass
class Predicate:
    """
    Accumulates `column op %s` conditions and their parameters. Column names
    come from code, never from the request; values only travel as parameters.
    """
    clauses: List[str] = field(default_factory=list)
    params: List[Any] = field(default_factory=list)

    def eq(self, column: str, value: Any) -> "Predicate":
        if value is not None:
            self.clauses.append(f"{column} = %s")
            self.params.append(value)
        return self

    def is_in(self, column: str, values: Optional[List[Any]]) -> "Predicate":
        if values:
            marks = ",".join(["%s"] * len(values))
            self.clauses.append(f"{column} IN ({marks})")
            self.params.extend(values)
        return self

    def where(self) -> Tuple[str, Tuple[Any, ...]]:
        if not self.clauses:
            return "", ()
        return " WHERE " + " AND ".join(self.clauses), tuple(self.params)


def policy_list_predicate(
    owner_user_id: Optional[int] = None,
    status: Optional[str] = None,
    policy_type: Optional[str] = None,
) -> Predicate:
    return (
        Predicate()
        .eq("p.`user_id`", owner_user_id)
        .eq("p.`status`", status)
        .eq("p.`policy_type`", policy_type)
    )
