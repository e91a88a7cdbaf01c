# scheduler.py
# Installment scheduling: one dated draft per installment of a card purchase

import logging
from uuid import uuid4

from ledger.periods import cycle_of, cycle_start, shift_cycle
from ledger.records import TransactionDraft

logger = logging.getLogger(__name__)


def schedule(base_description, amount, installment_count, start_cycle, *,
             is_recurrent=False, purchase_group_id=None, ideal_day=None):
    """
    Build the card drafts for a purchase starting in ``start_cycle``.
    Installment k of n is dated to the first day of start_cycle + (k - 1) months.
    A single installment, or a recurring purchase, yields one draft.
    """
    group_id = purchase_group_id or str(uuid4())
    count = 1 if is_recurrent else installment_count
    drafts = []
    for i in range(count):
        drafts.append(TransactionDraft(
            type="card",
            description=base_description,
            amount=amount,
            date=cycle_start(shift_cycle(start_cycle, i)),
            is_recurrent=is_recurrent,
            installments=count,
            current_installment=i + 1,
            purchase_group_id=group_id,
            ideal_day=ideal_day,
        ))
    return drafts


def drop_elapsed(drafts, current_cycle):
    # rollover only retires rows of the cycle it leaves, so nothing may be dated before it
    first_day = cycle_start(current_cycle)
    return [d for d in drafts if d.date >= first_day]


def plan_start_cycle(group):
    if not group:
        raise ValueError("empty installment group")
    starts = [shift_cycle(cycle_of(tx.date), -((tx.current_installment or 1) - 1)) for tx in group]
    return min(starts)


def reschedule(group, description, amount, installment_count, current_cycle):
    """
    Regenerate a plan with a new installment count.
    Numbering still counts from the plan's original start cycle, but only the
    installments due in ``current_cycle`` or later are returned.
    """
    first = group[0]
    start = plan_start_cycle(group)
    drafts = drop_elapsed(schedule(
        description,
        amount,
        installment_count,
        start,
        purchase_group_id=first.purchase_group_id,
        ideal_day=first.ideal_day,
    ), current_cycle)
    logger.info(
        f"Rescheduling plan {first.purchase_group_id or description!r}: "
        f"{first.installments} -> {installment_count} installments from {start}, "
        f"{len(drafts)} still due"
    )
    return drafts
