# rollover.py
# Cycle rollover: save the positive balance, purge casual spending, retire the
# elapsed installment, carry recurring purchases into the next cycle.

import logging
from enum import Enum
from typing import List

from pydantic import BaseModel

from models import EXPENSE_TYPES
from ledger.errors import RolloverConflictError
from ledger.grouping import group_key, is_installment
from ledger.periods import cycle_start, in_cycle, next_cycle
from ledger.records import TransactionDraft
from ledger.store import OneOf

logger = logging.getLogger(__name__)


class IncomeChoice(str, Enum):
    MONTHLY_SALARY = "monthly_salary"
    INITIAL_INCOME = "initial_income"
    NONE = "none"


class CycleTotals(BaseModel):
    cycle: str
    total_income: float = 0.0
    total_fixed: float = 0.0
    total_card: float = 0.0
    total_casual: float = 0.0

    @property
    def total_expenses(self):
        return self.total_fixed + self.total_card + self.total_casual

    @property
    def available_balance(self):
        return self.total_income - self.total_expenses

    def to_dict(self):
        out = self.model_dump()
        out["total_expenses"] = self.total_expenses
        out["available_balance"] = self.available_balance
        return out


class RolloverPlan(BaseModel):
    old_cycle: str
    new_cycle: str
    available_balance: float
    total_saved: float
    initial_income: float
    delete_ids: List[int] = []
    inserts: List[TransactionDraft] = []

    @property
    def profile_patch(self):
        return {
            "current_cycle": self.new_cycle,
            "total_saved": self.total_saved,
            "initial_income": self.initial_income,
        }


def cycle_totals(transactions, cycle, base_income=0.0):
    sums = {t: 0.0 for t in ("income",) + EXPENSE_TYPES}
    for tx in transactions:
        if in_cycle(tx.date, cycle):
            sums[tx.type] += tx.amount
    return CycleTotals(
        cycle=cycle,
        total_income=base_income + sums["income"],
        total_fixed=sums["fixed"],
        total_card=sums["card"],
        total_casual=sums["casual"],
    )


def missing_recurring(transactions, cycle):
    """Drafts for every recurring purchase that has no entry dated in ``cycle`` yet."""
    latest = {}
    present = set()
    for tx in transactions:
        if not tx.is_recurrent:
            continue
        key = group_key(tx)
        if in_cycle(tx.date, cycle):
            present.add(key)
        seen = latest.get(key)
        if seen is None or (tx.date, tx.id) > (seen.date, seen.id):
            latest[key] = tx
    drafts = []
    for key, tx in latest.items():
        if key in present:
            continue
        drafts.append(TransactionDraft(
            type=tx.type,
            description=tx.description,
            amount=tx.amount,
            date=cycle_start(cycle),
            is_recurrent=True,
            installments=tx.installments,
            current_installment=tx.current_installment,
            purchase_group_id=tx.purchase_group_id,
            ideal_day=tx.ideal_day,
        ))
    return drafts


def _next_initial_income(profile, choice):
    if choice is IncomeChoice.MONTHLY_SALARY:
        return profile.monthly_salary
    if choice is IncomeChoice.INITIAL_INCOME:
        return profile.initial_income
    return 0.0


def plan_rollover(profile, transactions, income_choice=IncomeChoice.NONE):
    """Compute everything a rollover changes without touching the store."""
    income_choice = IncomeChoice(income_choice)
    old = profile.current_cycle
    new = next_cycle(old)
    balance = cycle_totals(transactions, old, profile.initial_income).available_balance

    delete_ids = [
        tx.id for tx in transactions
        if in_cycle(tx.date, old) and (tx.type == "casual" or is_installment(tx))
    ]
    return RolloverPlan(
        old_cycle=old,
        new_cycle=new,
        available_balance=balance,
        total_saved=profile.total_saved + balance if balance > 0 else profile.total_saved,
        initial_income=_next_initial_income(profile, income_choice),
        delete_ids=delete_ids,
        inserts=missing_recurring(transactions, new),
    )


def roll_cycle(store, user_id, income_choice=IncomeChoice.NONE):
    """Advance the user's cycle by one month as a single unit of work."""
    with store.atomic():
        profile = store.get_profile(user_id)
        plan = plan_rollover(profile, store.transactions(user_id), income_choice)
        if not store.update_profile(user_id, plan.profile_patch, expected_cycle=plan.old_cycle):
            logger.warning(f"User {user_id}: cycle {plan.old_cycle} already rolled over")
            raise RolloverConflictError(f"Cycle {plan.old_cycle} is no longer current")
        if plan.delete_ids:
            store.delete_transactions(user_id, OneOf("id", plan.delete_ids))
        store.insert_transactions(user_id, plan.inserts)
    logger.info(
        f"User {user_id}: rolled {plan.old_cycle} -> {plan.new_cycle}, "
        f"saved {max(plan.available_balance, 0):.2f}, removed {len(plan.delete_ids)}, "
        f"carried {len(plan.inserts)} recurring"
    )
    return plan


def ensure_recurring_entries(store, user_id, cycle):
    """Insert the recurring entries missing from ``cycle``; a repeat call inserts nothing."""
    with store.atomic():
        created = store.insert_transactions(user_id, missing_recurring(store.transactions(user_id), cycle))
    if created:
        logger.info(f"User {user_id}: added {len(created)} recurring entries to {cycle}")
    return created


def apply_profile_patch(store, user_id, patch):
    """
    Save profile settings. Moving ``current_cycle`` also brings the recurring
    purchases into the new cycle, in the same unit of work.
    """
    with store.atomic():
        before = store.get_profile(user_id)
        if patch:
            store.update_profile(user_id, patch)
        cycle = patch.get("current_cycle")
        created = []
        if cycle and cycle != before.current_cycle:
            created = store.insert_transactions(user_id, missing_recurring(store.transactions(user_id), cycle))
    if created:
        logger.info(f"User {user_id}: moved to {cycle}, added {len(created)} recurring entries")
    return store.get_profile(user_id)
