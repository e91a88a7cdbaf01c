import pytest

from ledger.errors import RolloverConflictError, StoreError
from ledger.purchases import add_transaction
from ledger.records import TransactionInput
from ledger.rollover import (
    IncomeChoice, apply_profile_patch, cycle_totals, ensure_recurring_entries, missing_recurring, plan_rollover,
    roll_cycle,
)
from ledger.store import Eq, InCycle


def _set_profile(store, user_id, **patch):
    with store.atomic():
        store.update_profile(user_id, patch)


def test_cycle_totals_only_count_the_cycle(store, user_id, seed):
    seed("income", "Bonus", 500, "2024-11")
    seed("fixed", "Rent", 100, "2024-11")
    seed("card", "Shoes", 150, "2024-11")
    seed("casual", "Coffee", 50, "2024-11")
    seed("casual", "Dinner", 80, "2024-12")
    totals = cycle_totals(store.transactions(user_id), "2024-11", base_income=1000)
    assert totals.total_income == 1500
    assert totals.total_expenses == 300
    assert totals.available_balance == 1200
    assert totals.to_dict()["available_balance"] == 1200


def test_rollover_saves_positive_balance(store, user_id, seed):
    seed("income", "Bonus", 500, "2024-11")
    seed("fixed", "Rent", 100, "2024-11")
    seed("card", "Shoes", 150, "2024-11")
    seed("casual", "Coffee", 50, "2024-11")
    plan = roll_cycle(store, user_id)
    assert plan.available_balance == 200
    profile = store.get_profile(user_id)
    assert profile.total_saved == 200
    assert profile.current_cycle == "2024-12"


def test_rollover_keeps_savings_when_balance_not_positive(store, user_id, seed):
    _set_profile(store, user_id, total_saved=75.0)
    seed("income", "Bonus", 500, "2024-11")
    seed("casual", "Trip", 600, "2024-11")
    plan = roll_cycle(store, user_id)
    assert plan.available_balance == -100
    assert store.get_profile(user_id).total_saved == 75.0


def test_rollover_with_zero_balance(store, user_id, seed):
    seed("income", "Bonus", 100, "2024-11")
    seed("fixed", "Gym", 100, "2024-11")
    roll_cycle(store, user_id)
    assert store.get_profile(user_id).total_saved == 0.0


def test_rollover_year_boundary(store, user_id):
    _set_profile(store, user_id, current_cycle="2024-12")
    assert roll_cycle(store, user_id).new_cycle == "2025-01"
    assert store.get_profile(user_id).current_cycle == "2025-01"


@pytest.mark.parametrize("choice,expected", [
    (IncomeChoice.MONTHLY_SALARY, 3000.0),
    (IncomeChoice.INITIAL_INCOME, 1000.0),
    (IncomeChoice.NONE, 0.0),
    ("monthly_salary", 3000.0),
])
def test_income_choice_seeds_next_cycle(store, user_id, choice, expected):
    _set_profile(store, user_id, initial_income=1000.0, monthly_salary=3000.0)
    roll_cycle(store, user_id, choice)
    profile = store.get_profile(user_id)
    assert profile.initial_income == expected
    # the old cycle's base income was unspent
    assert profile.total_saved == 1000.0


def test_casual_spending_is_purged_and_the_rest_kept(store, user_id, seed):
    seed("income", "Bonus", 500, "2024-11")
    seed("fixed", "Rent", 100, "2024-11")
    seed("card", "Shoes", 150, "2024-11")
    seed("casual", "Coffee", 50, "2024-11")
    seed("casual", "Tea", 5, "2024-11")
    seed("casual", "Concert", 70, "2024-12")
    roll_cycle(store, user_id)
    nov = store.transactions(user_id, InCycle("date", "2024-11"))
    assert sorted(t.description for t in nov) == ["Bonus", "Rent", "Shoes"]
    assert [t.description for t in store.transactions(user_id, Eq("type", "casual"))] == ["Concert"]


def test_elapsed_installment_is_retired(store, user_id):
    profile = store.get_profile(user_id)
    add_transaction(store, profile, TransactionInput(type="card", description="Laptop", amount=150, installments=3))
    roll_cycle(store, user_id)
    left = store.transactions(user_id, Eq("description", "Laptop"))
    assert [(t.date.isoformat(), t.label) for t in left] == [
        ("2024-12-01", "Laptop (2/3)"),
        ("2025-01-01", "Laptop (3/3)"),
    ]
    roll_cycle(store, user_id)
    roll_cycle(store, user_id)
    assert store.transactions(user_id, Eq("description", "Laptop")) == []


def test_recurring_purchase_is_carried_forward(store, user_id, seed):
    seed("card", "Streaming", 30, "2024-11", is_recurrent=True, purchase_group_id="stream", ideal_day=7)
    plan = roll_cycle(store, user_id)
    assert len(plan.inserts) == 1
    (dec,) = store.transactions(user_id, InCycle("date", "2024-12"))
    assert (dec.description, dec.amount, dec.is_recurrent, dec.purchase_group_id, dec.ideal_day) == \
        ("Streaming", 30, True, "stream", 7)
    # the November occurrence stays as history
    assert len(store.transactions(user_id, Eq("is_recurrent", True))) == 2


def test_recurring_regeneration_is_idempotent(store, user_id, seed):
    seed("card", "Streaming", 30, "2024-11", is_recurrent=True, purchase_group_id="stream")
    seed("card", "Gym app", 10, "2024-10", is_recurrent=True)
    seed("card", "Gym app", 10, "2024-11", is_recurrent=True)
    assert len(ensure_recurring_entries(store, user_id, "2024-12")) == 2
    assert ensure_recurring_entries(store, user_id, "2024-12") == []
    roll_cycle(store, user_id)
    dec = store.transactions(user_id, InCycle("date", "2024-12"))
    assert sorted(t.description for t in dec) == ["Gym app", "Streaming"]


def test_missing_recurring_uses_latest_amount(store, user_id, seed):
    seed("card", "Streaming", 25, "2024-10", is_recurrent=True, purchase_group_id="stream")
    seed("card", "Streaming", 30, "2024-11", is_recurrent=True, purchase_group_id="stream")
    (draft,) = missing_recurring(store.transactions(user_id), "2024-12")
    assert draft.amount == 30
    assert draft.date.isoformat() == "2024-12-01"


def test_plan_rollover_does_not_touch_the_store(store, user_id, seed):
    seed("casual", "Coffee", 50, "2024-11")
    plan = plan_rollover(store.get_profile(user_id), store.transactions(user_id))
    assert plan.new_cycle == "2024-12"
    assert len(plan.delete_ids) == 1
    assert store.get_profile(user_id).current_cycle == "2024-11"
    assert len(store.transactions(user_id)) == 1


def test_failed_rollover_changes_nothing(store, user_id, seed, monkeypatch):
    seed("income", "Bonus", 500, "2024-11")
    seed("casual", "Coffee", 50, "2024-11")

    def boom(*args, **kwargs):
        raise StoreError("insert failed")

    monkeypatch.setattr(store, "insert_transactions", boom)
    with pytest.raises(StoreError):
        roll_cycle(store, user_id)
    profile = store.get_profile(user_id)
    assert (profile.current_cycle, profile.total_saved) == ("2024-11", 0.0)
    assert len(store.transactions(user_id, Eq("type", "casual"))) == 1


def test_second_rollover_of_same_cycle_conflicts(store, user_id, seed, monkeypatch):
    seed("income", "Bonus", 500, "2024-11")
    stale = store.get_profile(user_id)
    roll_cycle(store, user_id)
    monkeypatch.setattr(store, "get_profile", lambda uid: stale)
    with pytest.raises(RolloverConflictError):
        roll_cycle(store, user_id)
    monkeypatch.undo()
    profile = store.get_profile(user_id)
    assert (profile.current_cycle, profile.total_saved) == ("2024-12", 500.0)


def test_profile_patch_moves_cycle_with_recurring_entries(store, user_id, seed):
    seed("card", "Streaming", 30, "2024-11", is_recurrent=True, purchase_group_id="stream")
    profile = apply_profile_patch(store, user_id, {"current_cycle": "2025-02", "ideal_day": 12})
    assert (profile.current_cycle, profile.ideal_day) == ("2025-02", 12)
    assert [t.description for t in store.transactions(user_id, InCycle("date", "2025-02"))] == ["Streaming"]
    apply_profile_patch(store, user_id, {"current_cycle": "2025-02"})
    assert len(store.transactions(user_id, InCycle("date", "2025-02"))) == 1


def test_profile_patch_failure_keeps_old_cycle(store, user_id, seed, monkeypatch):
    seed("card", "Streaming", 30, "2024-11", is_recurrent=True, purchase_group_id="stream")

    def boom(*args, **kwargs):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "insert_transactions", boom)
    with pytest.raises(StoreError):
        apply_profile_patch(store, user_id, {"current_cycle": "2025-02"})
    monkeypatch.undo()
    assert store.get_profile(user_id).current_cycle == "2024-11"
    assert store.transactions(user_id, InCycle("date", "2025-02")) == []
