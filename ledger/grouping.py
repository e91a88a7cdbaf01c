# grouping.py
# Identity of installment plans and recurring purchases

import re

from ledger.store import Eq, StartsWith

INSTALLMENT_SUFFIX_RE = re.compile(r" \(\d+/\d+\)$")


def strip_installment_suffix(description):
    """Remove a trailing " (k/n)" left on rows written before base descriptions were stored."""
    return INSTALLMENT_SUFFIX_RE.sub("", description)


def is_installment(tx):
    return tx.type == "card" and not tx.is_recurrent and (tx.installments or 1) > 1


def legacy_group_key(tx):
    """(base description, amount, type): how rows were grouped before purchase_group_id.

    Two different purchases with the same description and amount share this key.
    """
    return strip_installment_suffix(tx.description), float(tx.amount), tx.type


def group_key(tx):
    if tx.purchase_group_id:
        return ("group", tx.purchase_group_id)
    return ("legacy",) + legacy_group_key(tx)


def group_filters(tx):
    if tx.purchase_group_id:
        return [Eq("purchase_group_id", tx.purchase_group_id)]
    base, amount, ttype = legacy_group_key(tx)
    return [Eq("type", ttype), Eq("amount", amount), StartsWith("description", base)]
