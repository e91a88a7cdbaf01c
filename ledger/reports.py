# reports.py
# Per-cycle history and upcoming installment commitments

import pandas as pd

from models import EXPENSE_TYPES, TRANSACTION_TYPES
from ledger.grouping import is_installment
from ledger.periods import cycle_of


def _frame(transactions):
    if not transactions:
        return pd.DataFrame(columns=["cycle", "type", "amount", "installment"])
    df = pd.DataFrame([{
        "cycle": cycle_of(t.date),
        "type": t.type,
        "amount": float(t.amount),
        "installment": is_installment(t),
    } for t in transactions])
    return df


def cycle_history(transactions):
    """
    Totals per cycle and type, one row per cycle, sorted by cycle.
    Columns: income, fixed, card, casual, expenses, balance.
    Base income lives on the profile and is not part of the history.
    """
    df = _frame(transactions)
    if df.empty:
        return pd.DataFrame(columns=list(TRANSACTION_TYPES) + ["expenses", "balance"])
    g = (
        df.groupby(["cycle", "type"])["amount"]
        .sum()
        .unstack(fill_value=0.0)
        .reindex(columns=list(TRANSACTION_TYPES), fill_value=0.0)
        .sort_index()
    )
    g["expenses"] = g[list(EXPENSE_TYPES)].sum(axis=1)
    g["balance"] = g["income"] - g["expenses"]
    return g.round(2)


def upcoming_commitments(transactions, from_cycle):
    """Installment totals for every cycle after ``from_cycle`` that still has one due."""
    df = _frame(transactions)
    if df.empty:
        return pd.Series(dtype=float, name="amount")
    df = df[df["installment"] & (df["cycle"] > from_cycle)]
    return df.groupby("cycle")["amount"].sum().sort_index().round(2)
