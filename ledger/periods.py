# periods.py
# Cycle (YYYY-MM) parsing and month arithmetic

import re
from datetime import date

from dateutil.relativedelta import relativedelta

from ledger.errors import InvalidCycleError

CYCLE_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def parse_cycle(cycle):
    """Return the first day of the cycle month."""
    m = CYCLE_RE.match((cycle or "").strip())
    if not m:
        raise InvalidCycleError(f"Invalid cycle {cycle!r}, expected YYYY-MM")
    return date(int(m.group(1)), int(m.group(2)), 1)


def format_cycle(d):
    return f"{d.year:04d}-{d.month:02d}"


cycle_of = format_cycle
cycle_start = parse_cycle


def shift_cycle(cycle, k):
    return format_cycle(parse_cycle(cycle) + relativedelta(months=k))


def next_cycle(cycle):
    return shift_cycle(cycle, 1)


def cycle_bounds(cycle):
    # half-open: [start, start of next month)
    start = parse_cycle(cycle)
    return start, start + relativedelta(months=1)


def in_cycle(d, cycle):
    return cycle_of(d) == format_cycle(parse_cycle(cycle))


def today_cycle(today=None):
    return format_cycle(today or date.today())
