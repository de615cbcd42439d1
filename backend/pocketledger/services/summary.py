from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from pocketledger.core.errors import ValidationError

ZERO = Decimal("0.00")


def summarize(rows: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Totals over transaction rows carrying ``type``, ``amount`` and ``is_paid``."""
    paid_income = pending_income = paid_expenses = pending_expenses = ZERO
    count = 0
    for row in rows:
        amount = Decimal(str(row.get("amount") or 0))
        paid = bool(row.get("is_paid"))
        if row.get("type") == "income":
            if paid:
                paid_income += amount
            else:
                pending_income += amount
        else:
            if paid:
                paid_expenses += amount
            else:
                pending_expenses += amount
        count += 1

    total_income = paid_income + pending_income
    total_expenses = paid_expenses + pending_expenses
    return {
        "totalIncome": total_income,
        "totalExpenses": total_expenses,
        "balance": total_income - total_expenses,
        "paidIncome": paid_income,
        "pendingIncome": pending_income,
        "paidExpenses": paid_expenses,
        "pendingExpenses": pending_expenses,
        "paidBalance": paid_income - paid_expenses,
        "pendingBalance": pending_income - pending_expenses,
        "transactionCount": count,
    }


def compute_summary(store, start_date: date | None = None, end_date: date | None = None) -> dict[str, Any]:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")
    return summarize(store.summary_rows(start_date, end_date))
