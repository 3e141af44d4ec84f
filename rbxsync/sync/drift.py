"""Drift detection — pull live remote state back into the checkpoint.

Drift happens when resources are edited outside rbxsync: renamed, repriced,
taken off sale, given a new icon, or created by hand. A pull merges three
views of every resource:

1. The checkpoint (what rbxsync last applied)
2. The live remote listing
3. The desired state (what the user declared)

Non-icon fields simply follow the remote. Icons are content-addressed, so a
remote icon change is only adopted when it cannot silently overwrite a local
edit; otherwise it is reported as a conflict and the whole pull is refused.
Nothing is written unless the pull succeeds as a whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from rbxsync.content import ContentStore, fingerprint
from rbxsync.errors import ConflictError, ProviderError, ValidationError
from rbxsync.models.plan import Conflict
from rbxsync.models.resources import (
    CHECKPOINT_VERSION,
    KIND_ORDER,
    AppliedState,
    DesiredState,
    ResourceKind,
)
from rbxsync.providers.base import Provider, RemoteResource

logger = logging.getLogger(__name__)

UNNAMED = "unnamed"

# Remote-visible attributes compared per kind, in report order.
_REMOTE_FIELDS = {
    ResourceKind.PASSES: ("name", "price", "description", "for_sale"),
    ResourceKind.BADGES: ("name", "description", "enabled"),
    ResourceKind.PRODUCTS: ("name", "price", "description", "for_sale", "store_page"),
}


class DriftStatus:
    NEW = "new"  # On the remote, not in the checkpoint
    CHANGED = "changed"  # In both, fields differ
    REMOVED = "removed"  # In the checkpoint, confirmed gone remotely


@dataclass
class PullOptions:
    accept_remote: bool = False
    accept_local: bool = False
    dry_run: bool = False

    def validate(self) -> None:
        if self.accept_remote and self.accept_local:
            raise ValidationError("--accept-remote and --accept-local are mutually exclusive")


@dataclass
class RemoteDrift:
    """How one resource's remote state differs from the checkpoint."""

    kind: ResourceKind
    key: str
    status: str
    remote_id: int
    changes: list[str] = field(default_factory=list)


@dataclass
class DesiredChange:
    """How the desired state was (or would be) updated from the remote."""

    kind: ResourceKind
    key: str
    is_new: bool
    changes: list[str] = field(default_factory=list)


@dataclass
class PendingDownload:
    kind: ResourceKind
    key: str
    asset_id: int
    path: str  # relative to the project directory


@dataclass
class PullResult:
    """Outcome of a pull: the merged states plus a report of what changed."""

    desired: DesiredState
    applied: AppliedState
    drift: list[RemoteDrift] = field(default_factory=list)
    desired_changes: list[DesiredChange] = field(default_factory=list)
    downloads: list[PendingDownload] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.drift or self.desired_changes or self.downloads)

    def counts(self) -> dict[ResourceKind, int]:
        return {kind: len(self.applied.resources(kind)) for kind in KIND_ORDER}


class DriftDetector:
    """Pulls remote state and three-way merges it with checkpoint and desired state.

    Args:
        provider: Remote capability used for listing, fetching, and downloads.
        content: Icon file access, rooted at the project directory.
        save_desired: Persists the merged desired state after a successful pull.
        save_applied: Persists the merged checkpoint after a successful pull.
    """

    def __init__(
        self,
        provider: Provider,
        content: ContentStore,
        save_desired: Callable[[DesiredState], None] | None = None,
        save_applied: Callable[[AppliedState], None] | None = None,
    ):
        self.provider = provider
        self.content = content
        self.save_desired = save_desired
        self.save_applied = save_applied

    def pull(
        self,
        desired: DesiredState,
        applied: AppliedState,
        options: PullOptions | None = None,
    ) -> PullResult:
        """Pull remote state.

        The inputs are never mutated; the merged states are returned in the
        result. Raises ConflictError, listing every conflict, when icons
        changed on both sides and neither accept flag is set. In that case,
        and in dry-run mode, nothing is downloaded or written.
        """
        options = options or PullOptions()
        options.validate()

        merged_desired = desired.copy()
        merged = AppliedState(version=CHECKPOINT_VERSION, universe_id=desired.experience.universe_id)
        result = PullResult(desired=merged_desired, applied=merged, dry_run=options.dry_run)

        for kind in KIND_ORDER:
            observed = self._observe(kind, applied, result)
            merged.resources(kind).update(observed)
            result.drift.extend(_compare(kind, applied.resources(kind), observed))
            result.desired_changes.extend(_project(kind, merged_desired, observed))

        for kind in KIND_ORDER:
            for key, lock in merged.resources(kind).items():
                self._resolve_icon(kind, key, lock, applied, merged_desired, options, result)

        if options.dry_run:
            return result

        if result.conflicts:
            raise ConflictError(result.conflicts)

        self._commit(result)
        return result

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def _observe(self, kind: ResourceKind, applied: AppliedState, result: PullResult) -> dict:
        """Remote resources of *kind* as checkpoint entries, keyed locally.

        Resources the checkpoint knows keep their key. Unknown ones are keyed
        by their remote name, and never take a key the checkpoint already
        holds.
        """
        known = applied.id_index(kind)
        old = applied.resources(kind)
        observed: dict = {}
        unknown: list[RemoteResource] = []

        listing = self.provider.list(kind)
        seen = {remote.remote_id for remote in listing}
        for remote in listing:
            key = known.get(remote.remote_id)
            if key is None:
                unknown.append(remote)
            else:
                observed[key] = _to_applied(kind, remote, old[key], fetched=False)

        if not kind.listing_complete:
            for key in sorted(old):
                lock = old[key]
                if lock.remote_id in seen:
                    continue
                try:
                    remote = self.provider.get(kind, lock.remote_id)
                except ProviderError as e:
                    if e.status != 404:
                        raise
                    logger.info("%s '%s' (id: %s) is gone remotely", kind.label, key, lock.remote_id)
                    continue
                observed[key] = _to_applied(kind, remote, lock, fetched=True)

        for remote in unknown:
            key = remote.name or UNNAMED
            if key in observed or key in old:
                # First one wins. Adopting several same-named resources drops the rest.
                message = f"Duplicate {kind.label} name '{key}' (id: {remote.remote_id}), skipping"
                logger.warning(message)
                result.warnings.append(message)
                continue
            observed[key] = _to_applied(kind, remote, None, fetched=False)

        return observed

    # ------------------------------------------------------------------
    # Icon three-way merge
    # ------------------------------------------------------------------

    def _resolve_icon(
        self,
        kind: ResourceKind,
        key: str,
        lock,
        applied: AppliedState,
        desired: DesiredState,
        options: PullOptions,
        result: PullResult,
    ) -> None:
        """Settle the icon fingerprint of one merged entry.

        An unchanged remote icon keeps its fingerprint. A changed one is
        scheduled for download (accept_remote), cleared for re-upload
        (accept_local, or no local icon), or registered as a conflict.
        """
        old_lock = applied.resources(kind).get(key)
        old_icon = old_lock.icon_asset_id if old_lock else None
        config = desired.resources(kind).get(key)
        local_icon = config.icon if config else None

        if old_icon == lock.icon_asset_id:
            lock.icon_hash = old_lock.icon_hash if old_lock else None
            return

        lock.icon_hash = None

        if options.accept_remote:
            if lock.icon_asset_id is None:
                return
            path = local_icon or default_icon_path(desired, kind, lock.remote_id, key)
            result.downloads.append(
                PendingDownload(kind=kind, key=key, asset_id=lock.icon_asset_id, path=path)
            )
            return

        if options.accept_local or local_icon is None:
            return

        result.conflicts.append(
            Conflict(
                key=key,
                kind=kind,
                local_hash=self.content.fingerprint_file(local_icon) if self.content.exists(local_icon) else "",
                local_path=local_icon,
                remote_asset_id=lock.icon_asset_id,
            )
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _commit(self, result: PullResult) -> None:
        # Fetch everything before writing anything.
        payloads = []
        for dl in result.downloads:
            logger.info("Downloading %s '%s' icon (asset %s)", dl.kind.label, dl.key, dl.asset_id)
            payloads.append((dl, self.provider.download_asset(dl.asset_id)))

        for dl, data in payloads:
            self.content.write_bytes(dl.path, data)
            result.applied.resources(dl.kind)[dl.key].icon_hash = fingerprint(data)
            config = result.desired.resources(dl.kind).get(dl.key)
            if config is not None and config.icon is None:
                config.icon = dl.path
            logger.info("Saved %s '%s' icon to %s", dl.kind.label, dl.key, dl.path)

        if self.save_applied is not None:
            self.save_applied(result.applied)
        if self.save_desired is not None:
            self.save_desired(result.desired)


def default_icon_path(desired: DesiredState, kind: ResourceKind, remote_id: int, key: str) -> str:
    return f"{desired.icons.dir}/{kind.label}-{remote_id}-{key}.png"


def _to_applied(kind: ResourceKind, remote: RemoteResource, previous, fetched: bool):
    """Checkpoint entry for a remote resource.

    ``regional_pricing`` is not reported remotely and carries over from the
    previous checkpoint entry. Individually fetched badges are the hidden
    ones, so their enabled flag defaults to off.
    """
    values = {
        "remote_id": remote.remote_id,
        "name": remote.name or UNNAMED,
        "description": remote.description,
        "icon_asset_id": remote.icon_asset_id,
    }
    if kind is ResourceKind.PASSES:
        values["price"] = remote.price
    if kind is ResourceKind.PRODUCTS:
        values["price"] = remote.price if remote.price is not None else 0
        values["store_page"] = bool(remote.store_page)
    if kind is ResourceKind.BADGES:
        values["enabled"] = remote.enabled if remote.enabled is not None else not fetched
    else:
        values["for_sale"] = remote.for_sale if remote.for_sale is not None else True
        values["regional_pricing"] = previous.regional_pricing if previous is not None else False
    return kind.applied_type(**values)


def _compare(kind: ResourceKind, old: dict, observed: dict) -> list[RemoteDrift]:
    drift = []
    for key in sorted(observed):
        lock = observed[key]
        previous = old.get(key)
        if previous is None:
            drift.append(RemoteDrift(kind=kind, key=key, status=DriftStatus.NEW, remote_id=lock.remote_id))
            continue
        changes = []
        for attr in _REMOTE_FIELDS[kind]:
            before, after = getattr(previous, attr), getattr(lock, attr)
            if attr == "description":
                before, after = before or "", after or ""
            if before != after:
                changes.append(f"{attr}: {before!r} -> {after!r}")
        if previous.icon_asset_id != lock.icon_asset_id:
            changes.append(f"icon: {previous.icon_asset_id} -> {lock.icon_asset_id}")
        if changes:
            drift.append(
                RemoteDrift(kind=kind, key=key, status=DriftStatus.CHANGED, remote_id=lock.remote_id, changes=changes)
            )
    for key in sorted(set(old) - set(observed)):
        drift.append(RemoteDrift(kind=kind, key=key, status=DriftStatus.REMOVED, remote_id=old[key].remote_id))
    return drift


def _project(kind: ResourceKind, desired: DesiredState, observed: dict) -> list[DesiredChange]:
    """Write remote-visible fields into the desired state, keeping config-only ones."""
    configs = desired.resources(kind)
    changes = []
    for key in sorted(observed):
        lock = observed[key]
        name = lock.name if lock.name != key else None
        config = configs.get(key)
        if config is None:
            values = {attr: getattr(lock, attr) for attr in _REMOTE_FIELDS[kind] if attr != "name"}
            configs[key] = kind.desired_type(name=name, **values)
            changes.append(DesiredChange(kind=kind, key=key, is_new=True))
            continue
        field_changes = []
        if config.name != name:
            field_changes.append(f"name: {config.name!r} -> {name!r}")
            config.name = name
        for attr in _REMOTE_FIELDS[kind]:
            if attr == "name":
                continue
            before, after = getattr(config, attr), getattr(lock, attr)
            if before != after:
                field_changes.append(f"{attr}: {before!r} -> {after!r}")
                setattr(config, attr, after)
        if field_changes:
            changes.append(DesiredChange(kind=kind, key=key, is_new=False, changes=field_changes))
    return changes
