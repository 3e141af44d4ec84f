"""Checkpoint document — ``rbxsync.lock.yaml``.

The checkpoint records what was last applied remotely: the remote id of every
resource, a mirror of its applied attributes, the remote icon asset id last
observed, and the fingerprint of the icon bytes last uploaded or downloaded.
It is rewritten whole after every successful remote mutation.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import asdict
from pathlib import Path

import yaml

from rbxsync.errors import ValidationError
from rbxsync.models.resources import CHECKPOINT_VERSION, KIND_ORDER, AppliedState

CHECKPOINT_NAME = "rbxsync.lock.yaml"


def checkpoint_path_for(config_path: str | Path) -> Path:
    """The checkpoint sits next to the desired-state document."""
    return Path(config_path).parent / CHECKPOINT_NAME


class CheckpointFile:
    """Loads and atomically saves the checkpoint at a fixed path."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> AppliedState:
        if not self.path.exists():
            return AppliedState()
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Failed to parse {self.path}: {e}") from e
        return checkpoint_from_dict(data, source=str(self.path))

    def save(self, state: AppliedState) -> None:
        """Write the whole checkpoint through a temp file and an atomic rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(checkpoint_to_dict(state), f, sort_keys=False, allow_unicode=True)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    __call__ = save


def checkpoint_to_dict(state: AppliedState) -> dict:
    data: dict = {"version": state.version, "universe_id": state.universe_id}
    for kind in KIND_ORDER:
        section = state.resources(kind)
        data[kind.value] = {key: asdict(section[key]) for key in sorted(section)}
    return data


def checkpoint_from_dict(data: dict, source: str = "checkpoint") -> AppliedState:
    version = data.get("version", CHECKPOINT_VERSION)
    if not isinstance(version, int) or version > CHECKPOINT_VERSION:
        raise ValidationError(
            f"{source} has schema version {version!r}; this rbxsync supports up to "
            f"{CHECKPOINT_VERSION}. Upgrade rbxsync."
        )

    state = AppliedState(version=CHECKPOINT_VERSION, universe_id=data.get("universe_id", 0))
    issues: list[str] = []
    for kind in KIND_ORDER:
        section = state.resources(kind)
        for key, entry in (data.get(kind.value) or {}).items():
            try:
                section[str(key)] = kind.applied_type(**entry)
            except TypeError as e:
                issues.append(f"{source}: {kind.value}.{key}: {e}")
    if issues:
        raise ValidationError(issues)
    return state
