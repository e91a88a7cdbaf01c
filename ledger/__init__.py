"""Cycle bookkeeping: installment scheduling, cycle rollover and the record store."""
