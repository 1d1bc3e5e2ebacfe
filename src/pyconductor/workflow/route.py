"""Value-based routing for steps that pick their agent at run time."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pyconductor.core.errors import NoRouteError
from pyconductor.models.agent import Agent


@dataclass(frozen=True)
class Route:
    """An agent to run for one route value, with optional input overrides."""

    agent: Agent
    input: Mapping[str, Any] = field(default_factory=dict)


def normalize_route_key(value: Any) -> str:
    """
    Map a route value to its lookup key.

    Booleans become "true"/"false", None becomes "none", enums use their
    value, and everything else its lower-cased string form.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "none"
    if isinstance(value, Enum):
        value = value.value
    return str(value).lower()


class RouteBuilder:
    """
    Table of routes keyed by normalized value, with an optional default.

    Example:
        routes = RouteBuilder({"billing": BillingAgent, "tech": TechAgent}, default=GeneralAgent)
        routes.resolve("Billing").agent  # BillingAgent
    """

    def __init__(
        self,
        routes: Mapping[Any, Agent | Route] | None = None,
        default: Agent | Route | None = None,
    ):
        self._routes: dict[str, Route] = {}
        self._default: Route | None = None
        for value, target in (routes or {}).items():
            self.add(value, target)
        if default is not None:
            self.set_default(default)

    @staticmethod
    def _as_route(target: Agent | Route) -> Route:
        return target if isinstance(target, Route) else Route(target)

    def add(self, value: Any, target: Agent | Route) -> RouteBuilder:
        self._routes[normalize_route_key(value)] = self._as_route(target)
        return self

    def set_default(self, target: Agent | Route) -> RouteBuilder:
        self._default = self._as_route(target)
        return self

    def resolve(self, value: Any) -> Route:
        """
        Raises:
            NoRouteError: If no route matches and there is no default
        """
        route = self._routes.get(normalize_route_key(value), self._default)
        if route is None:
            raise NoRouteError(value, self.route_names)
        return route

    @property
    def route_names(self) -> list[str]:
        return list(self._routes)

    @property
    def default(self) -> Route | None:
        return self._default

    def __contains__(self, value: object) -> bool:
        return normalize_route_key(value) in self._routes

    def __len__(self) -> int:
        return len(self._routes)
