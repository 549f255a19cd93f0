"""Turn per-day usage rows into a dense context x day-offset matrix."""

import logging

from .buckets import ReportWindow

log = logging.getLogger(__name__)


def _zero_filled(days: dict, window: ReportWindow) -> dict[int, int]:
    return {i: int(days.get(i, 0)) for i in window.offsets()}


def aggregate_usage(
    rows,
    window: ReportWindow,
    valid_context_ids=None,
    deanonymize: bool = False,
) -> dict:
    """Build the report matrix from grouped usage-log rows.

    Args:
        rows: Mappings with ``contextid``, ``yearcreated``, ``monthcreated``,
            ``daycreated``, ``amount`` and, when ``deanonymize`` is set,
            ``userid``.
        window: Reporting window the offsets are relative to.
        valid_context_ids: Module contexts that still exist. Rows for any
            other context are dropped. ``None`` keeps everything.
        deanonymize: Key the matrix by user inside each context.

    Returns:
        ``{contextid: {offset: amount}}``, or
        ``{contextid: {userid: {offset: amount}}}`` in per-user mode. Every
        offset of the window is present; keys are sorted ascending.
    """
    data: dict = {}
    skipped: set[int] = set()

    for row in rows:
        ctx = int(row["contextid"])
        if valid_context_ids is not None and ctx not in valid_context_ids:
            skipped.add(ctx)
            continue

        offset = window.offset_of(row["yearcreated"], row["monthcreated"], row["daycreated"])
        amount = int(row["amount"] or 0)
        if deanonymize:
            users = data.setdefault(ctx, {})
            users.setdefault(int(row["userid"]), {})[offset] = amount
        else:
            data.setdefault(ctx, {})[offset] = amount

    if skipped:
        log.info("Skipped usage rows for %d missing module contexts", len(skipped))

    if deanonymize:
        return {
            ctx: {uid: _zero_filled(users[uid], window) for uid in sorted(users)}
            for ctx, users in sorted(data.items())
        }
    return {ctx: _zero_filled(days, window) for ctx, days in sorted(data.items())}


def max_amount(data: dict) -> int:
    """Largest single-day amount in an anonymous matrix."""
    return max((max(days.values(), default=0) for days in data.values()), default=0)
