"""Lexical scope tree built during one validation pass."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

# Declaration kinds that are hoisted and therefore never in a temporal dead zone.
HOISTED_KINDS = frozenset({"var", "function"})


@dataclass(eq=False)
class ScopeInfo:
    declarations: dict[str, int] = field(default_factory=dict)
    usages: dict[str, list[int]] = field(default_factory=dict)
    function_params: set[str] = field(default_factory=set)
    parent: ScopeInfo | None = field(default=None, repr=False)
    children: list[ScopeInfo] = field(default_factory=list, repr=False)
    declaration_kinds: dict[str, str] = field(default_factory=dict, repr=False)
    first_columns: dict[str, int] = field(default_factory=dict, repr=False)

    def child(self) -> ScopeInfo:
        scope = ScopeInfo(parent=self)
        self.children.append(scope)
        return scope

    def declare(self, name: str, line: int, kind: str = "let") -> None:
        if name in self.declarations:
            return
        self.declarations[name] = line
        self.declaration_kinds[name] = kind

    def use(self, name: str, line: int, column: int = 0) -> None:
        if name not in self.usages:
            self.usages[name] = []
            self.first_columns[name] = column
        self.usages[name].append(line)

    def binds(self, name: str) -> bool:
        return name in self.declarations or name in self.function_params

    def resolve(self, name: str) -> ScopeInfo | None:
        """Return the nearest scope (self included) that binds ``name``."""
        search: ScopeInfo | None = self
        while search is not None:
            if search.binds(name):
                return search
            search = search.parent
        return None

    def is_hoisted(self, name: str) -> bool:
        return self.declaration_kinds.get(name) in HOISTED_KINDS

    def walk(self) -> Iterator[ScopeInfo]:
        yield self
        for scope in self.children:
            yield from scope.walk()

    def depth(self) -> int:
        level = 0
        search = self.parent
        while search is not None:
            level += 1
            search = search.parent
        return level
