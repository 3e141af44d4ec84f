"""In-memory provider and fixtures shared by the tests."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from rbxsync.errors import ProviderError
from rbxsync.models.resources import DesiredState, Experience, ResourceKind
from rbxsync.providers.base import Provider, RemoteResource, ResourceFields

PNG_A = b"\x89PNG\r\n\x1a\nicon-a"
PNG_B = b"\x89PNG\r\n\x1a\nicon-b"


class FakeProvider(Provider):
    """Records every call and keeps remote resources in dicts."""

    def __init__(self, next_id: int = 1000):
        self.resources: dict[ResourceKind, dict[int, RemoteResource]] = {k: {} for k in ResourceKind}
        self.hidden: dict[ResourceKind, set[int]] = {k: set() for k in ResourceKind}
        self.assets: dict[int, bytes] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[tuple] = set()  # (method, name) pairs that raise
        self.ack_empty = False
        self._next_id = next_id

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _check(self, method: str, name: str | None) -> None:
        if (method, name) in self.fail_on:
            raise ProviderError(f"{method} {name} rejected", status=400)

    def create(self, kind: ResourceKind, fields: ResourceFields) -> RemoteResource:
        self.calls.append(("create", kind, fields))
        self._check("create", fields.name)
        icon_id = None
        if fields.icon is not None:
            icon_id = self._new_id()
            self.assets[icon_id] = fields.icon
        remote = RemoteResource(
            remote_id=self._new_id(),
            name=fields.name,
            description=fields.description,
            price=fields.price,
            for_sale=fields.for_sale,
            enabled=fields.enabled,
            store_page=fields.store_page,
            icon_asset_id=icon_id,
        )
        self.resources[kind][remote.remote_id] = remote
        return replace(remote)

    def update(self, kind: ResourceKind, remote_id: int, fields: ResourceFields) -> RemoteResource | None:
        self.calls.append(("update", kind, remote_id, fields))
        self._check("update", fields.name)
        remote = self.resources[kind][remote_id]
        remote.name = fields.name
        remote.description = fields.description
        remote.price = fields.price
        remote.for_sale = fields.for_sale
        remote.enabled = fields.enabled
        remote.store_page = fields.store_page
        if fields.icon is not None:
            remote.icon_asset_id = self._new_id()
            self.assets[remote.icon_asset_id] = fields.icon
        return None if self.ack_empty else replace(remote)

    def get(self, kind: ResourceKind, remote_id: int) -> RemoteResource:
        self.calls.append(("get", kind, remote_id))
        if remote_id not in self.resources[kind]:
            raise ProviderError(f"{kind.label} {remote_id} not found", status=404)
        return replace(self.resources[kind][remote_id])

    def list(self, kind: ResourceKind) -> list[RemoteResource]:
        self.calls.append(("list", kind))
        return [
            replace(r)
            for rid, r in sorted(self.resources[kind].items())
            if rid not in self.hidden[kind]
        ]

    def download_asset(self, asset_id: int) -> bytes:
        self.calls.append(("download", asset_id))
        return self.assets[asset_id]

    # -- helpers --

    def add(self, kind: ResourceKind, remote: RemoteResource, icon: bytes | None = None) -> RemoteResource:
        if icon is not None:
            remote.icon_asset_id = remote.icon_asset_id or self._new_id()
            self.assets[remote.icon_asset_id] = icon
        self.resources[kind][remote.remote_id] = remote
        return remote

    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("create", "update")]


def make_desired(universe_id: int = 42) -> DesiredState:
    return DesiredState(experience=Experience(universe_id=universe_id, creator_type="user", creator_id=7))


def write_icon(root: str | Path, rel: str, data: bytes) -> str:
    path = Path(root) / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return rel
