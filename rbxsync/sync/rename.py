"""Rename — move a resource to a new local key without touching the remote.

The checkpoint entry moves with the desired entry, so the resource keeps its
remote id and the next sync sees no change. When the desired entry had no
explicit display name, the old key becomes its name so the remote-visible
name stays what it was.
"""

from __future__ import annotations

import logging

from rbxsync.errors import IdentityError
from rbxsync.models.resources import AppliedState, DesiredState, ResourceKind

logger = logging.getLogger(__name__)


def rename_resource(
    desired: DesiredState,
    applied: AppliedState,
    kind: ResourceKind,
    old_key: str,
    new_key: str,
) -> bool:
    """Rekey *old_key* to *new_key* in both states.

    Returns True if a checkpoint entry moved as well. A resource that was
    never synced has no checkpoint entry, which is fine.

    Raises:
        IdentityError: *old_key* is not declared, or *new_key* already is.
            Neither state is modified in that case.
    """
    configs = desired.resources(kind)
    if old_key not in configs:
        raise IdentityError(f"{kind.label} '{old_key}' not found")
    if new_key in configs:
        raise IdentityError(f"{kind.label} '{new_key}' already exists")

    config = configs.pop(old_key)
    if config.name is None:
        config.name = old_key
    configs[new_key] = config

    locks = applied.resources(kind)
    moved = old_key in locks
    if moved:
        # Any stale entry already under new_key is overwritten.
        locks[new_key] = locks.pop(old_key)

    logger.info("Renamed %s '%s' -> '%s'%s", kind.label, old_key, new_key, "" if moved else " (not yet synced)")
    return moved
