"""Planner — diff the desired state against the checkpoint.

Keys are visited in lexicographic order within each kind so that the same
inputs always produce the same plan. Resources that only exist in the
checkpoint produce a warning and never an action: nothing is ever deleted.
"""

from __future__ import annotations

import logging

from rbxsync.content import ContentStore
from rbxsync.models.plan import Create, FieldChange, ResourceAction, Skip, SyncPlan, Update
from rbxsync.models.resources import (
    KIND_ORDER,
    AppliedState,
    DesiredState,
    ResourceKind,
    applied_attributes,
    resolve_name,
)

logger = logging.getLogger(__name__)


def build_sync_plan(
    desired: DesiredState,
    applied: AppliedState,
    content: ContentStore,
    kinds=KIND_ORDER,
) -> SyncPlan:
    """Compute the ordered plan for *kinds* (all kinds by default)."""
    plan = SyncPlan()

    for kind in kinds:
        configs = desired.resources(kind)
        for key in sorted(applied.resources(kind)):
            if key not in configs:
                plan.warnings.append(
                    f"{kind.label.capitalize()} '{key}' exists in checkpoint but not "
                    "in desired state (will not be deleted)"
                )

    for kind in kinds:
        configs = desired.resources(kind)
        locks = applied.resources(kind)
        for key in sorted(configs):
            lock = locks.get(key)
            if lock is None:
                action = Create()
            else:
                changes = diff_resource(kind, key, configs[key], lock, content)
                action = Update(changes=tuple(changes)) if changes else Skip()
            plan.actions.append(ResourceAction(key=key, kind=kind, action=action))

    logger.debug("Planned %s", plan.summary())
    return plan


def diff_resource(kind: ResourceKind, key: str, config, lock, content: ContentStore) -> list[FieldChange]:
    """Every field where *config* differs from its checkpoint mirror *lock*."""
    changes: list[FieldChange] = []

    name = resolve_name(config, key)
    if name != lock.name:
        changes.append(FieldChange("name", lock.name, name))

    desired_attrs = applied_attributes(config)
    for attr in config.ATTRIBUTES:
        new = desired_attrs[attr]
        old = getattr(lock, attr)
        if attr == "description":
            # An absent description and an empty one are the same remotely.
            new, old = new or "", old or ""
        if new != old:
            changes.append(FieldChange(attr, _show(old), _show(new)))

    if config.icon is not None:
        current = content.fingerprint_file(config.icon)
        stored = lock.icon_hash or ""
        if current != stored:
            changes.append(FieldChange("icon", _short(stored), _short(current)))

    return changes


def _show(value) -> str:
    if value is None:
        return "none"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _short(digest: str) -> str:
    return f"{digest[:8]}..." if digest else "none"
