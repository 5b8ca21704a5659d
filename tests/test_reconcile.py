from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy.exc import OperationalError

from fridgemind.models import InventoryItem, InventoryTransaction
from fridgemind.services import reconcile
from fridgemind.services.reconcile import Candidate, plan_reconcile, reconcile_batch

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


@dataclass
class Stock:
    id: str
    name: str
    location: str = "fridge"
    quantity: float = 1.0
    created_at: Optional[datetime] = T0
    consumed_at: Optional[datetime] = None


def kinds(actions):
    return [(a.kind, a.name) for a in actions]


# --- Planning (no database) ---

def test_plan_legacy_inserts_and_overwrites():
    existing = [Stock("1", "Milk", quantity=1)]
    actions = plan_reconcile(existing, [Candidate("milk", "fridge", 3), Candidate("Eggs", "fridge", 12)])
    assert kinds(actions) == [("update", "milk"), ("insert", "Eggs")]
    assert actions[0].fields["quantity"] == 3
    assert actions[0].delta == 2


def test_plan_unknown_policy():
    with pytest.raises(ValueError):
        plan_reconcile([], [Candidate("a", "fridge")], policy="merge")


def test_plan_skip_keeps_existing():
    actions = plan_reconcile([Stock("1", "apple", quantity=1)], [Candidate("Apples", "fridge", 5)], policy="skip")
    assert kinds(actions) == [("skip", "Apples")]


def test_plan_add_duplicates_in_batch_merge_into_one_insert():
    actions = plan_reconcile([], [Candidate("egg", "fridge", 6), Candidate("Eggs", "fridge", 6)], policy="add")
    assert [a.kind for a in actions] == ["insert"]
    assert actions[0].fields["quantity"] == 12


def test_plan_add_duplicates_against_existing_accumulate():
    existing = [Stock("1", "milk", quantity=1)]
    actions = plan_reconcile(existing, [Candidate("milk", "fridge", 2), Candidate("Milk", "fridge", 3)], policy="add")
    assert [a.kind for a in actions] == ["update"]
    assert actions[0].fields["quantity"] == 6
    assert actions[0].delta == 5


def test_plan_replace_zero_quantity_of_unknown_item_is_skipped():
    actions = plan_reconcile([], [Candidate("Butter", "fridge", 0)], policy="replace", location="fridge")
    assert kinds(actions) == [("skip", "Butter")]


def test_plan_replace_zero_after_insert_in_same_batch_cancels_insert():
    actions = plan_reconcile(
        [], [Candidate("ham", "fridge", 2), Candidate("Ham", "fridge", 0)], policy="replace", location="fridge",
    )
    assert [a.kind for a in actions] == ["skip"]


def test_plan_replace_only_syncs_named_location():
    existing = [Stock("1", "peas", "freezer", 2), Stock("2", "cheese", "fridge", 1)]
    actions = plan_reconcile(existing, [Candidate("milk", "fridge", 1)], policy="replace", location="fridge")
    assert kinds(actions) == [("insert", "milk"), ("delete", "cheese")]


def test_plan_replace_without_location_syncs_batch_locations():
    existing = [Stock("1", "peas", "freezer", 2), Stock("2", "cheese", "fridge", 1)]
    actions = plan_reconcile(existing, [Candidate("ice", "freezer", 1)], policy="replace")
    assert kinds(actions) == [("insert", "ice"), ("delete", "peas")]


def test_plan_is_deterministic_under_row_order():
    a = Stock("a", "milk", created_at=T0 + timedelta(minutes=1))
    b = Stock("b", "milk", created_at=T0)
    first = plan_reconcile([a, b], [Candidate("milk", "fridge", 4)], policy="add")
    second = plan_reconcile([b, a], [Candidate("milk", "fridge", 4)], policy="add")
    assert first[0].target.id == second[0].target.id == "b"


# --- Applying against the database ---

def test_replace_sync_completeness(db_session, workspace, add_item, stock):
    add_item("A", 1, "fridge")
    add_item("C", 5, "fridge")
    add_item("Frozen peas", 2, "freezer")

    outcome = reconcile_batch(
        db_session, workspace.id,
        [Candidate("A", "fridge", 2), Candidate("B", "fridge", 0)],
        policy="replace", location="fridge",
    )

    assert stock() == {"A": 2.0, "Frozen peas": 2.0}
    assert outcome.updated_items == ["A"]
    assert outcome.deleted_items == ["C"]
    assert outcome.skipped_items == ["B"]
    assert outcome.inserted_items == []


def test_replace_zero_quantity_deletes_match(db_session, workspace, add_item, stock):
    add_item("Butter", 1, "fridge")
    outcome = reconcile_batch(db_session, workspace.id, [Candidate("butter", "fridge", 0)], policy="replace", location="fridge")
    assert stock() == {}
    assert outcome.deleted_items == ["Butter"]


def test_replace_overwrites_descriptive_fields(db_session, workspace, add_item):
    item = add_item("Yogurt", 1, "fridge", freshness="fresh", expiry_date=date(2026, 1, 5))
    reconcile_batch(
        db_session, workspace.id,
        [Candidate("yogurt", "fridge", 2, storage_category="dairy", freshness="use_soon", expiry_date=date(2026, 1, 3))],
        policy="replace", location="fridge",
    )
    db_session.expire_all()
    fresh = db_session.get(InventoryItem, item.id)
    assert fresh.storage_category == "dairy"
    assert fresh.freshness == "use_soon"
    assert fresh.expiry_date == date(2026, 1, 3)
    assert fresh.name == "yogurt"


def test_add_accumulation(db_session, workspace, add_item, stock):
    add_item("A", 1)
    outcome = reconcile_batch(db_session, workspace.id, [Candidate("A", "fridge", 2)], policy="add")
    assert stock() == {"A": 3.0}
    assert outcome.updated_items == ["A"]


def test_add_keeps_expiry_when_not_provided(db_session, workspace, add_item):
    item = add_item("Milk", 1, expiry_date=date(2026, 2, 1))
    reconcile_batch(db_session, workspace.id, [Candidate("milk", "fridge", 1)], policy="add")
    db_session.expire_all()
    assert db_session.get(InventoryItem, item.id).expiry_date == date(2026, 2, 1)


def test_skip_preserves_existing(db_session, workspace, add_item, stock):
    add_item("A", 1)
    outcome = reconcile_batch(db_session, workspace.id, [Candidate("A", "fridge", 5)], policy="skip")
    assert stock() == {"A": 1.0}
    assert outcome.inserted_items == []
    assert outcome.updated_items == []
    assert outcome.skipped_items == ["A"]


def test_consumed_items_are_not_merge_targets(db_session, workspace, add_item, stock):
    add_item("Milk", 1, consumed_at=T0)
    outcome = reconcile_batch(db_session, workspace.id, [Candidate("milk", "fridge", 2)], policy="add")
    assert outcome.inserted_items == ["milk"]
    assert stock() == {"milk": 2.0}


@pytest.mark.parametrize("policy", ["skip", "replace"])
def test_rerun_converges(db_session, workspace, add_item, stock, policy):
    add_item("Cheese", 1)
    batch = [Candidate("cheese", "fridge", 2), Candidate("Eggs", "fridge", 6), Candidate("egg", "fridge", 6)]

    reconcile_batch(db_session, workspace.id, batch, policy=policy, location="fridge")
    after_first = stock()
    reconcile_batch(db_session, workspace.id, batch, policy=policy, location="fridge")

    assert stock() == after_first
    assert len(after_first) == 2


def test_one_failing_item_does_not_abort_batch(db_session, workspace, stock, monkeypatch):
    real_apply = reconcile._apply_action

    def flaky_apply(db, workspace_id, action, **kw):
        if action.name == "Bad Bread":
            raise OperationalError("INSERT", {}, Exception("disk full"))
        return real_apply(db, workspace_id, action, **kw)

    monkeypatch.setattr(reconcile, "_apply_action", flaky_apply)

    outcome = reconcile_batch(
        db_session, workspace.id,
        [Candidate("Milk", "fridge"), Candidate("Bad Bread", "pantry"), Candidate("Eggs", "fridge", 12)],
    )

    assert outcome.inserted_items == ["Milk", "Eggs"]
    assert outcome.errors == [{"item": "Bad Bread", "error": "Failed to insert item"}]
    assert stock() == {"Milk": 1.0, "Eggs": 12.0}
    assert "1 failed" in outcome.message


def test_mutations_are_logged(db_session, workspace, add_item):
    add_item("Milk", 1)
    reconcile_batch(
        db_session, workspace.id, [Candidate("milk", "fridge", 3), Candidate("Jam", "pantry", 1)],
        policy="add", source="receipt", ref_type="receipt", ref_id="r-1",
    )
    txns = db_session.query(InventoryTransaction).filter_by(ref_id="r-1").all()
    assert sorted((t.action, t.item_name, float(t.delta_qty)) for t in txns) == [
        ("insert", "Jam", 1.0),
        ("update", "Milk", 3.0),
    ]


def test_message_mentions_counts():
    outcome = reconcile.MergeOutcome(inserted_items=["a"], updated_items=["b", "c"], deleted_items=["d"])
    assert outcome.message == "Added 1 new items, updated 2 existing items, removed 1"
