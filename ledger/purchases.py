# purchases.py
# Add / edit / delete flows for income, fixed, casual and card entries

import logging
from uuid import uuid4

from ledger.errors import InvalidEditError
from ledger.grouping import group_filters, is_installment
from ledger.periods import cycle_of, cycle_start
from ledger.records import TransactionDraft
from ledger.scheduler import drop_elapsed, reschedule, schedule
from ledger.store import Eq, Gt

logger = logging.getLogger(__name__)

# Listing queries behind each page of the app
PAGES = {
    "income": [Eq("type", "income")],
    "fixed": [Eq("type", "fixed")],
    "casual": [Eq("type", "casual")],
    "installments": [Eq("type", "card"), Eq("is_recurrent", False), Gt("installments", 1)],
    "recurring": [Eq("is_recurrent", True)],
}


def transactions_for_page(store, user_id, page):
    if page not in PAGES:
        raise ValueError(f"Unknown page {page!r}")
    return store.transactions(user_id, *PAGES[page], order_by=("-created_at", "-id"))


def drafts_for(data, profile):
    ideal_day = data.ideal_day or profile.ideal_day
    if data.type == "card":
        return schedule(
            data.description,
            data.amount,
            data.installments,
            profile.current_cycle,
            is_recurrent=data.is_recurrent,
            ideal_day=ideal_day,
        )
    return [TransactionDraft(
        type=data.type,
        description=data.description,
        amount=data.amount,
        date=cycle_start(profile.current_cycle),
        ideal_day=ideal_day if data.type == "fixed" else None,
    )]


def add_transaction(store, profile, data):
    with store.atomic():
        created = store.insert_transactions(profile.user_id, drafts_for(data, profile))
    logger.info(f"User {profile.user_id}: added {len(created)} {data.type} row(s) in {profile.current_cycle}")
    return created


def _split_single(store, user_id, tx, description, amount, installments, current_cycle):
    # a one-off card purchase becomes a plan starting in its own cycle
    if tx.type != "card" or tx.is_recurrent:
        raise InvalidEditError("Only card purchases can be split into installments")
    store.delete_transactions(user_id, Eq("id", tx.id))
    drafts = drop_elapsed(
        schedule(description, amount, installments, cycle_of(tx.date), ideal_day=tx.ideal_day),
        current_cycle,
    )
    logger.info(f"User {user_id}: split transaction {tx.id} into {installments} installments")
    return store.insert_transactions(user_id, drafts)


def edit_transaction(store, user_id, tx_id, description, amount, installments=None):
    """
    Update one entry, or every row of the installment plan it belongs to.

    A new installment count regenerates the plan: numbering starts from the
    plan's original start cycle, and installments dated before the profile's
    current cycle are not recreated. Giving a single card purchase a count
    above one turns it into a plan.
    """
    with store.atomic():
        tx = store.get_transaction(user_id, tx_id)
        current_cycle = store.get_profile(user_id).current_cycle
        if not is_installment(tx):
            if installments and installments > 1:
                return _split_single(store, user_id, tx, description, amount, installments, current_cycle)
            store.update_transactions(user_id, {"description": description, "amount": amount}, Eq("id", tx.id))
            return [store.get_transaction(user_id, tx.id)]

        filters = group_filters(tx)
        group = store.transactions(user_id, *filters)
        if installments and installments != tx.installments:
            store.delete_transactions(user_id, *filters)
            drafts = reschedule(group, description, amount, installments, current_cycle)
            return store.insert_transactions(user_id, drafts)

        # legacy rows matched by value get an explicit group id here
        group_id = tx.purchase_group_id or str(uuid4())
        patch = {"description": description, "amount": amount, "purchase_group_id": group_id}
        store.update_transactions(user_id, patch, *filters)
        return store.transactions(user_id, Eq("purchase_group_id", group_id))


def delete_transaction(store, user_id, tx_id):
    """Delete an entry; installment rows take their whole plan with them."""
    with store.atomic():
        tx = store.get_transaction(user_id, tx_id)
        if is_installment(tx):
            count = store.delete_transactions(user_id, *group_filters(tx))
        else:
            count = store.delete_transactions(user_id, Eq("id", tx.id))
    logger.info(f"User {user_id}: deleted {count} row(s) starting from transaction {tx_id}")
    return count


def reset_transactions(store, user_id, ttype):
    with store.atomic():
        count = store.delete_transactions(user_id, Eq("type", ttype))
    logger.info(f"User {user_id}: reset {count} {ttype} row(s)")
    return count
