"""Customer ledger (거래처원장) summaries by account, project and customer."""

from dataclasses import dataclass

from erpsight.records.models import CustomerLedgerRecord

UNASSIGNED_PROJECT = "(미지정)"


@dataclass
class AccountSummary:
    account_code: str
    account_name: str
    debit: float = 0.0
    credit: float = 0.0
    balance: float = 0.0         # debit − credit
    count: int = 0


@dataclass
class ProjectSummary:
    project: str
    debit: float = 0.0
    credit: float = 0.0
    balance: float = 0.0
    customer_count: int = 0
    count: int = 0


@dataclass
class CustomerBalance:
    customer: str
    customer_name: str
    debit: float = 0.0
    credit: float = 0.0
    balance: float = 0.0
    last_date: str = ""
    count: int = 0


def _by_abs_balance(rows):
    return sorted(rows, key=lambda r: abs(r.balance), reverse=True)


def calc_account_summary(records: list[CustomerLedgerRecord]) -> list[AccountSummary]:
    accounts: dict[tuple[str, str], AccountSummary] = {}
    for r in records:
        a = accounts.setdefault((r.account_code, r.account_name), AccountSummary(r.account_code, r.account_name))
        a.debit += r.debit
        a.credit += r.credit
        a.count += 1
    for a in accounts.values():
        a.balance = a.debit - a.credit
    return _by_abs_balance(accounts.values())


def calc_project_summary(records: list[CustomerLedgerRecord]) -> list[ProjectSummary]:
    projects: dict[str, ProjectSummary] = {}
    customers: dict[str, set] = {}
    for r in records:
        key = r.project_name or UNASSIGNED_PROJECT
        p = projects.setdefault(key, ProjectSummary(key))
        p.debit += r.debit
        p.credit += r.credit
        p.count += 1
        if r.customer:
            customers.setdefault(key, set()).add(r.customer)
    for key, p in projects.items():
        p.balance = p.debit - p.credit
        p.customer_count = len(customers.get(key, ()))
    return _by_abs_balance(projects.values())


def calc_customer_balances(records: list[CustomerLedgerRecord]) -> list[CustomerBalance]:
    """Net balance per customer with the latest posting date; the first name seen is kept."""
    balances: dict[str, CustomerBalance] = {}
    for r in records:
        if not r.customer:
            continue
        b = balances.setdefault(r.customer, CustomerBalance(r.customer, r.customer_name or r.customer))
        b.debit += r.debit
        b.credit += r.credit
        b.count += 1
        if r.posting_date > b.last_date:
            b.last_date = r.posting_date
    for b in balances.values():
        b.balance = b.debit - b.credit
    return _by_abs_balance(balances.values())
