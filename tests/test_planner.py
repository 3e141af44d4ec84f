"""Tests for the planner: desired state vs checkpoint."""

import tempfile

from fakes import PNG_A, PNG_B, make_desired, write_icon

from rbxsync.content import ContentStore, fingerprint
from rbxsync.models.plan import Create, Skip, Update
from rbxsync.models.resources import (
    AppliedBadge,
    AppliedPass,
    AppliedProduct,
    AppliedState,
    BadgeConfig,
    PassConfig,
    ProductConfig,
    ResourceKind,
)
from rbxsync.sync.planner import build_sync_plan


def _applied(**passes) -> AppliedState:
    return AppliedState(universe_id=42, passes=dict(passes))


def test_new_resource_is_created():
    desired = make_desired()
    desired.passes["VIP"] = PassConfig(price=499)
    plan = build_sync_plan(desired, AppliedState(), ContentStore("."))

    action = plan.get(ResourceKind.PASSES, "VIP")
    assert isinstance(action.action, Create)
    assert plan.summary() == "1 to create, 0 to update, 0 unchanged"


def test_matching_checkpoint_is_skipped():
    desired = make_desired()
    desired.passes["VIP"] = PassConfig(price=499, description="VIP access")
    applied = _applied(VIP=AppliedPass(remote_id=1, name="VIP", price=499, description="VIP access"))

    plan = build_sync_plan(desired, applied, ContentStore("."))
    assert isinstance(plan.get(ResourceKind.PASSES, "VIP").action, Skip)
    assert not plan.has_changes


def test_single_field_change_lists_only_that_field():
    desired = make_desired()
    desired.passes["VIP"] = PassConfig(price=599)
    applied = _applied(VIP=AppliedPass(remote_id=1, name="VIP", price=499))

    action = build_sync_plan(desired, applied, ContentStore(".")).get(ResourceKind.PASSES, "VIP")
    assert isinstance(action.action, Update)
    assert action.action.fields == ["price"]
    assert str(action.action.changes[0]) == "price: 499 -> 599"


def test_absent_price_differs_from_zero():
    desired = make_desired()
    desired.passes["Free"] = PassConfig(price=0)
    applied = _applied(Free=AppliedPass(remote_id=1, name="Free", price=None))

    action = build_sync_plan(desired, applied, ContentStore(".")).get(ResourceKind.PASSES, "Free")
    assert action.action.fields == ["price"]
    assert str(action.action.changes[0]) == "price: none -> 0"


def test_missing_description_matches_empty():
    desired = make_desired()
    desired.badges["Welcome"] = BadgeConfig()
    applied = AppliedState(badges={"Welcome": AppliedBadge(remote_id=5, name="Welcome", description="")})

    plan = build_sync_plan(desired, applied, ContentStore("."))
    assert isinstance(plan.get(ResourceKind.BADGES, "Welcome").action, Skip)


def test_display_name_defaults_to_key():
    desired = make_desired()
    desired.passes["VIP"] = PassConfig(name="VIP Pass")
    applied = _applied(VIP=AppliedPass(remote_id=1, name="VIP"))

    action = build_sync_plan(desired, applied, ContentStore(".")).get(ResourceKind.PASSES, "VIP")
    assert action.action.fields == ["name"]


def test_icon_compared_by_fingerprint():
    with tempfile.TemporaryDirectory() as tmp:
        rel = write_icon(tmp, "icons/vip.png", PNG_A)
        content = ContentStore(tmp)
        desired = make_desired()
        desired.passes["VIP"] = PassConfig(icon=rel)

        same = _applied(VIP=AppliedPass(remote_id=1, name="VIP", icon_hash=fingerprint(PNG_A)))
        assert not build_sync_plan(desired, same, content).has_changes

        stale = _applied(VIP=AppliedPass(remote_id=1, name="VIP", icon_hash=fingerprint(PNG_B)))
        action = build_sync_plan(desired, stale, content).get(ResourceKind.PASSES, "VIP")
        assert action.action.fields == ["icon"]


def test_unset_icon_is_never_a_change():
    desired = make_desired()
    desired.passes["VIP"] = PassConfig()
    applied = _applied(VIP=AppliedPass(remote_id=1, name="VIP", icon_asset_id=9, icon_hash="abc"))
    assert not build_sync_plan(desired, applied, ContentStore(".")).has_changes


def test_checkpoint_only_entries_warn_without_actions():
    desired = make_desired()
    applied = _applied(Old=AppliedPass(remote_id=1, name="Old"))

    plan = build_sync_plan(desired, applied, ContentStore("."))
    assert plan.actions == []
    assert plan.warnings == [
        "Pass 'Old' exists in checkpoint but not in desired state (will not be deleted)"
    ]


def test_actions_ordered_by_kind_then_key():
    desired = make_desired()
    desired.products["b"] = ProductConfig(price=10)
    desired.products["a"] = ProductConfig(price=10)
    desired.badges["z"] = BadgeConfig()
    desired.passes["m"] = PassConfig()
    desired.passes["c"] = PassConfig()

    plan = build_sync_plan(desired, AppliedState(), ContentStore("."))
    assert [(a.kind.value, a.key) for a in plan.ordered()] == [
        ("passes", "c"),
        ("passes", "m"),
        ("badges", "z"),
        ("products", "a"),
        ("products", "b"),
    ]


def test_kind_filter():
    desired = make_desired()
    desired.passes["VIP"] = PassConfig()
    desired.products["Coins"] = ProductConfig(price=5)
    applied = AppliedState(products={"Gone": AppliedProduct(remote_id=3, name="Gone")})

    plan = build_sync_plan(desired, applied, ContentStore("."), kinds=[ResourceKind.PASSES])
    assert [a.key for a in plan.actions] == ["VIP"]
    assert plan.warnings == []


def test_plan_is_deterministic():
    desired = make_desired()
    for key in ("x", "a", "m"):
        desired.passes[key] = PassConfig(price=1)
    first = build_sync_plan(desired, AppliedState(), ContentStore("."))
    second = build_sync_plan(desired, AppliedState(), ContentStore("."))
    assert first == second
