"""Reconciler — apply a sync plan against a provider.

Actions run strictly one at a time, kind by kind in a fixed order and key
by key in plan order. The checkpoint is handed to the injected persist
callable after every successful create or update, before the next action
starts, so the durable checkpoint never records a mutation that did not
happen. A ProviderError, or an icon that can no longer be read, stops the
run; everything persisted before it stays valid and the next run only
attempts what is left.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable

from rbxsync.content import ContentStore, fingerprint
from rbxsync.errors import SyncError
from rbxsync.models.plan import Create, ResourceAction, Skip, SyncPlan, Update
from rbxsync.models.resources import (
    KIND_ORDER,
    AppliedState,
    DesiredState,
    ResourceKind,
    applied_attributes,
    mirror_desired,
    resolve_name,
)
from rbxsync.providers.base import Provider, ResourceFields
from rbxsync.sync.planner import diff_resource

logger = logging.getLogger(__name__)

PersistFn = Callable[[AppliedState], None]


@dataclass
class AppliedAction:
    """One plan action that completed and was checkpointed."""

    kind: ResourceKind
    key: str
    verb: str  # create | update
    remote_id: int
    provider_calls: int = 1


@dataclass
class ApplyReport:
    applied: list[AppliedAction] = field(default_factory=list)
    skipped: int = 0
    failed: ResourceAction | None = None
    error: SyncError | None = None

    @property
    def provider_calls(self) -> int:
        return sum(a.provider_calls for a in self.applied)

    @property
    def aborted(self) -> bool:
        return self.error is not None


class Reconciler:
    """Executes SyncPlans, persisting the checkpoint after each mutation.

    Args:
        provider: Remote capability used for create and update calls.
        content: Icon file access, rooted at the project directory.
        persist: Called with the whole checkpoint after every mutation.
        kinds: Kinds to apply; actions of other kinds are left untouched.
    """

    def __init__(
        self,
        provider: Provider,
        content: ContentStore,
        persist: PersistFn,
        kinds=KIND_ORDER,
    ):
        self.provider = provider
        self.content = content
        self.persist = persist
        self.kinds = tuple(k for k in KIND_ORDER if k in set(kinds))
        self.report = ApplyReport()

    def apply(self, plan: SyncPlan, desired: DesiredState, applied: AppliedState) -> ApplyReport:
        """Run every action of *plan*, mutating *applied* in place.

        Raises ProviderError on the first unrecoverable remote failure, or
        ValidationError if an icon became unreadable since validation.
        ``self.report`` then lists what was applied before the abort.
        """
        self.report = ApplyReport()
        applied.universe_id = desired.experience.universe_id

        for kind in self.kinds:
            for action in plan.for_kind(kind):
                action = self._refresh(action, desired, applied)
                if isinstance(action.action, Skip):
                    self.report.skipped += 1
                    continue
                try:
                    if isinstance(action.action, Create):
                        done = self._create(action, desired, applied)
                    else:
                        done = self._update(action, desired, applied)
                except SyncError as e:
                    logger.error("%s %s '%s' failed: %s", action.verb, kind.label, action.key, e)
                    self.report.failed = action
                    self.report.error = e
                    raise
                self.persist(applied)
                self.report.applied.append(done)

        return self.report

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _create(self, action: ResourceAction, desired: DesiredState, applied: AppliedState) -> AppliedAction:
        kind, key = action.kind, action.key
        config = desired.resources(kind)[key]
        name = resolve_name(config, key)
        icon = self.content.read_bytes(config.icon) if config.icon else None

        logger.info("Creating %s '%s'", kind.label, key)
        remote = self.provider.create(kind, self._fields(name, config, icon))

        applied.resources(kind)[key] = mirror_desired(
            kind,
            remote.remote_id,
            name,
            config,
            icon_asset_id=remote.icon_asset_id,
            icon_hash=fingerprint(icon) if icon is not None else None,
        )
        logger.info("Created %s '%s' (id: %s)", kind.label, key, remote.remote_id)
        return AppliedAction(kind=kind, key=key, verb="create", remote_id=remote.remote_id)

    def _update(self, action: ResourceAction, desired: DesiredState, applied: AppliedState) -> AppliedAction:
        kind, key = action.kind, action.key
        config = desired.resources(kind)[key]
        lock = applied.resources(kind)[key]
        name = resolve_name(config, key)

        icon = None
        icon_hash = lock.icon_hash
        if config.icon is not None:
            current = self.content.fingerprint_file(config.icon)
            if current != lock.icon_hash:
                icon = self.content.read_bytes(config.icon)
                current = fingerprint(icon)
            icon_hash = current

        fields = self._fields(name, config, icon)
        calls = 0

        if self._leaves_sale_from_store_page(kind, config, lock):
            # The provider checks for_sale against its stored store-page flag,
            # not the one in the same request: take it off the store page first.
            logger.info("Removing %s '%s' from the store page before taking it off sale", kind.label, key)
            self.provider.update(
                kind, lock.remote_id, replace(fields, for_sale=True, store_page=False, icon=None)
            )
            calls += 1

        logger.info("Updating %s '%s' (%s)", kind.label, key, ", ".join(_changed(action)))
        remote = self.provider.update(kind, lock.remote_id, fields)
        calls += 1

        icon_asset_id = lock.icon_asset_id
        if remote is not None and remote.icon_asset_id is not None:
            icon_asset_id = remote.icon_asset_id

        applied.resources(kind)[key] = mirror_desired(
            kind,
            lock.remote_id,
            name,
            config,
            icon_asset_id=icon_asset_id,
            icon_hash=icon_hash,
        )
        return AppliedAction(
            kind=kind, key=key, verb="update", remote_id=lock.remote_id, provider_calls=calls
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _refresh(self, action: ResourceAction, desired: DesiredState, applied: AppliedState) -> ResourceAction:
        """Re-derive *action* against the checkpoint as it stands now.

        A plan applied a second time, or resumed after an abort, then skips
        everything that already went through.
        """
        lock = applied.resources(action.kind).get(action.key)
        if lock is None:
            return action
        config = desired.resources(action.kind)[action.key]
        changes = diff_resource(action.kind, action.key, config, lock, self.content)
        fresh = Update(changes=tuple(changes)) if changes else Skip()
        return ResourceAction(key=action.key, kind=action.kind, action=fresh)

    @staticmethod
    def _leaves_sale_from_store_page(kind: ResourceKind, config, lock) -> bool:
        """for_sale turns off while the store page is, or was, on."""
        if kind is not ResourceKind.PRODUCTS:
            return False
        return lock.for_sale and not config.for_sale and (lock.store_page or config.store_page)

    @staticmethod
    def _fields(name: str, config, icon: bytes | None) -> ResourceFields:
        return ResourceFields(name=name, icon=icon, **applied_attributes(config))


def _changed(action: ResourceAction) -> list[str]:
    if isinstance(action.action, Update):
        return action.action.fields
    return []
