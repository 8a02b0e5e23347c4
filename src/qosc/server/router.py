# -*- coding: utf-8 -*-
"""
Address routing.

Each served backend namespace gets one address per handler kind:

```
/<ns>/init     /<ns>/gate     /<ns>/measure     /<ns>/reset     /<ns>/query
```

Matching is exact. Routing holds no mutable state and has no side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from qosc.types import CMD, UnknownCommand


@dataclass(frozen=True)
class Route:
    namespace: str
    kind: str


def command_address(namespace: str, kind: str) -> str:
    return f"/{namespace}/{kind}"


class Router:
    """Ordered address -> Route table for one or more backend namespaces."""

    def __init__(self, namespaces: Iterable[str]):
        self._routes: dict[str, Route] = {}
        for namespace in namespaces:
            for kind in CMD.ALL:
                self._routes[command_address(namespace, kind)] = Route(namespace, kind)
        if not self._routes:
            raise ValueError("Router needs at least one namespace.")

    def route(self, address: str) -> Route:
        try:
            return self._routes[address]
        except KeyError:
            raise UnknownCommand(f"Unknown address: {address}") from None

    def addresses(self) -> Iterator[str]:
        return iter(self._routes)

    def __contains__(self, address: str) -> bool:
        return address in self._routes

    def __len__(self) -> int:
        return len(self._routes)
