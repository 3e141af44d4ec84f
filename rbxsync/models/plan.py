"""Sync plan models — what the planner decided for every resource."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from rbxsync.models.resources import KIND_ORDER, ResourceKind


@dataclass(frozen=True)
class FieldChange:
    """A single differing attribute between desired state and checkpoint."""

    field: str
    old: str
    new: str

    def __str__(self) -> str:
        return f"{self.field}: {self.old} -> {self.new}"


@dataclass(frozen=True)
class Create:
    """The resource has no checkpoint entry and must be created remotely."""


@dataclass(frozen=True)
class Update:
    """The resource exists but at least one field differs."""

    changes: tuple[FieldChange, ...]

    @property
    def fields(self) -> list[str]:
        return [c.field for c in self.changes]


@dataclass(frozen=True)
class Skip:
    """The checkpoint already matches the desired state."""


Action = Union[Create, Update, Skip]


@dataclass
class ResourceAction:
    key: str
    kind: ResourceKind
    action: Action

    @property
    def verb(self) -> str:
        if isinstance(self.action, Create):
            return "create"
        if isinstance(self.action, Update):
            return "update"
        return "skip"


@dataclass
class SyncPlan:
    """Ordered actions (kind order, then key order) plus advisory warnings."""

    actions: list[ResourceAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def for_kind(self, kind: ResourceKind) -> list[ResourceAction]:
        return [a for a in self.actions if a.kind is kind]

    def get(self, kind: ResourceKind, key: str) -> ResourceAction | None:
        for action in self.actions:
            if action.kind is kind and action.key == key:
                return action
        return None

    @property
    def has_changes(self) -> bool:
        return any(not isinstance(a.action, Skip) for a in self.actions)

    def counts(self) -> dict[str, int]:
        counts = {"create": 0, "update": 0, "skip": 0}
        for action in self.actions:
            counts[action.verb] += 1
        return counts

    def summary(self) -> str:
        c = self.counts()
        return f"{c['create']} to create, {c['update']} to update, {c['skip']} unchanged"

    def ordered(self) -> list[ResourceAction]:
        """Actions grouped by kind in processing order."""
        return [a for kind in KIND_ORDER for a in self.for_kind(kind)]


@dataclass
class Conflict:
    """An icon that changed both locally and remotely since the last checkpoint."""

    key: str
    kind: ResourceKind
    local_hash: str
    local_path: str
    remote_asset_id: int | None

    def describe(self) -> str:
        remote = self.remote_asset_id if self.remote_asset_id is not None else "none"
        return (
            f"{self.kind.label} '{self.key}': icon differs from remote "
            f"(local {self.local_path} sha256:{self.local_hash[:12]}..., remote asset {remote})"
        )
