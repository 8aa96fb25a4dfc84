"""
Module: ledger_kernel.selectors.balance_calculator
Responsibility: Derived reports computed from ledger lines as of an
    arbitrary date: account balance, trial balance, balance sheet, profit
    and loss, and the financial dashboard.
Architecture position: Kernel > Selectors.  Reads Account rows and the
    LedgerSelector / WithholdingSelector aggregates.  MUST NOT import from
    services/.

Invariants enforced:
    - Only balance-bearing lines (CONFIRMED, REVERSED) count.  A reversed
      line stays in history and is offset by its reversal's lines.
    - Opening balances are chart-level figures: they are included in
      point-in-time reports and left out when a report is scoped to one
      store or covers a closed period (profit and loss).
    - Orientation is decided only by normal_balance_for() and
      statement_section_for(), both exhaustive over AccountType.
    - net_profit == gross_profit; there is no tax or below-the-line
      section.

Failure modes:
    - AccountNotFoundError from account_balance() for an unknown code.
      Reports never raise on missing data; empty ledgers give zero totals.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.account_types import (
    StatementSection,
    normal_balance_for,
    statement_section_for,
)
from ledger_kernel.domain.policy import DEFAULT_POSTING_POLICY, PostingPolicy
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import AccountTotals, LedgerSelector
from ledger_kernel.selectors.withholding_selector import (
    WithholdingSelector,
    WithholdingSummary,
)

_ONE_DAY = timedelta(days=1)


def natural_balance(net: Decimal, account_type: AccountType) -> Decimal:
    """Debit-positive ``net`` turned to the account type's normal side."""
    if normal_balance_for(account_type) == NormalBalance.CREDIT:
        return ZERO - net
    return net


# =========================================================================
# Report DTOs
# =========================================================================


@dataclass(frozen=True)
class AccountBalance:
    """
    One account's balance as of a date.

    opening_balance is debit-positive and covers everything before
    from_date (the account's own opening balance when from_date is None).
    """

    account_code: str
    account_name: str
    account_type: AccountType
    as_of_date: date
    from_date: date | None
    opening_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal
    net_balance: Decimal
    balance: Decimal


@dataclass(frozen=True)
class TrialBalanceLine:
    """A single line in the trial balance."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    debit_balance: Decimal
    credit_balance: Decimal
    net_balance: Decimal  # natural orientation


@dataclass(frozen=True)
class TrialBalanceReport:
    as_of_date: date
    store_id: str | None
    lines: tuple[TrialBalanceLine, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class ReportSection:
    """Lines of one statement section, each in natural orientation."""

    section: StatementSection
    lines: tuple[TrialBalanceLine, ...]
    total: Decimal


@dataclass(frozen=True)
class BalanceSheetReport:
    """
    Assets, liabilities and equity as of a date.

    unclosed_earnings is income less expenses to date; it belongs with
    equity until a period close moves it to retained earnings.
    """

    as_of_date: date
    store_id: str | None
    assets: ReportSection
    liabilities: ReportSection
    equity: ReportSection
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    unclosed_earnings: Decimal
    total_liabilities_and_equity: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class ProfitAndLossReport:
    from_date: date
    to_date: date
    store_id: str | None
    revenue: ReportSection
    expenses: ReportSection
    total_revenue: Decimal
    total_expenses: Decimal
    gross_profit: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class FinancialDashboard:
    """Headline balances plus the withholding summary."""

    as_of_date: date
    store_id: str | None
    revenue: Decimal
    expenses: Decimal
    cash: Decimal
    bank: Decimal
    receivables: Decimal
    payables: Decimal
    withholding: WithholdingSummary


# =========================================================================
# Calculator
# =========================================================================


class BalanceCalculator(BaseSelector):
    """
    Read-only financial reports.

    Contract:
        Every figure is recomputed from ledger lines on each call and
        quantized to two places.  Nothing is cached or stored.
    """

    def __init__(self, session: Session, policy: PostingPolicy | None = None):
        super().__init__(session)
        self.policy = policy or DEFAULT_POSTING_POLICY
        self._ledger = LedgerSelector(session)
        self._withholding = WithholdingSelector(session)

    def _accounts(self) -> list[Account]:
        stmt = select(Account).order_by(Account.code)
        return list(self.session.execute(stmt).scalars().all())

    @staticmethod
    def _opening(account: Account, store_id: str | None) -> Decimal:
        return account.signed_opening_balance if store_id is None else ZERO

    def _line(self, account: Account, net: Decimal) -> TrialBalanceLine:
        net = round_money(net)
        return TrialBalanceLine(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type,
            debit_balance=net if net > ZERO else ZERO,
            credit_balance=ZERO - net if net < ZERO else ZERO,
            net_balance=natural_balance(net, account.account_type),
        )

    def _net_balances(
        self,
        as_of_date: date,
        store_id: str | None,
    ) -> list[tuple[Account, Decimal]]:
        """(account, debit-positive balance incl. opening) for nonzero accounts."""
        totals = self._ledger.totals_by_account(as_of_date=as_of_date, store_id=store_id)
        result = []
        for account in self._accounts():
            movement = totals.get(account.id)
            net = self._opening(account, store_id) + (movement.net if movement else ZERO)
            if net != ZERO:
                result.append((account, net))
        return result

    # ------------------------------------------------------------------
    # Single account
    # ------------------------------------------------------------------

    def account_balance(
        self,
        account_code: str,
        as_of_date: date,
        from_date: date | None = None,
        store_id: str | None = None,
    ) -> AccountBalance:
        account = self.session.execute(
            select(Account).where(Account.code == account_code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_code)

        opening = self._opening(account, store_id)
        if from_date is not None:
            before = self._ledger.account_totals(
                account.id, as_of_date=from_date - _ONE_DAY, store_id=store_id
            )
            opening += before.net
        period: AccountTotals = self._ledger.account_totals(
            account.id, as_of_date=as_of_date, from_date=from_date, store_id=store_id
        )
        net = round_money(opening + period.net)

        return AccountBalance(
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type,
            as_of_date=as_of_date,
            from_date=from_date,
            opening_balance=round_money(opening),
            debit_total=period.debit_total,
            credit_total=period.credit_total,
            net_balance=net,
            balance=natural_balance(net, account.account_type),
        )

    # ------------------------------------------------------------------
    # Trial balance
    # ------------------------------------------------------------------

    def trial_balance(self, as_of_date: date, store_id: str | None = None) -> TrialBalanceReport:
        """
        Every account with a nonzero balance: debit column when the
        debit-positive balance is positive, credit column otherwise.

        Deactivated accounts are listed while they carry a balance.
        """
        lines = tuple(
            self._line(account, net)
            for account, net in self._net_balances(as_of_date, store_id)
        )
        total_debits = round_money(sum((line.debit_balance for line in lines), ZERO))
        total_credits = round_money(sum((line.credit_balance for line in lines), ZERO))
        return TrialBalanceReport(
            as_of_date=as_of_date,
            store_id=store_id,
            lines=lines,
            total_debits=total_debits,
            total_credits=total_credits,
            is_balanced=total_debits == total_credits,
        )

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    @staticmethod
    def _section(section: StatementSection, lines: list[TrialBalanceLine]) -> ReportSection:
        total = round_money(sum((line.net_balance for line in lines), ZERO))
        return ReportSection(section=section, lines=tuple(lines), total=total)

    def _partition(
        self,
        balances: list[tuple[Account, Decimal]],
    ) -> dict[StatementSection, list[TrialBalanceLine]]:
        grouped: dict[StatementSection, list[TrialBalanceLine]] = {
            section: [] for section in StatementSection
        }
        for account, net in balances:
            grouped[statement_section_for(account.account_type)].append(
                self._line(account, net)
            )
        return grouped

    def balance_sheet(self, as_of_date: date, store_id: str | None = None) -> BalanceSheetReport:
        grouped = self._partition(self._net_balances(as_of_date, store_id))

        assets = self._section(StatementSection.ASSETS, grouped[StatementSection.ASSETS])
        liabilities = self._section(
            StatementSection.LIABILITIES, grouped[StatementSection.LIABILITIES]
        )
        equity = self._section(StatementSection.EQUITY, grouped[StatementSection.EQUITY])
        income = self._section(StatementSection.INCOME, grouped[StatementSection.INCOME])
        expenses = self._section(StatementSection.EXPENSES, grouped[StatementSection.EXPENSES])

        unclosed = income.total - expenses.total
        liabilities_and_equity = liabilities.total + equity.total + unclosed

        return BalanceSheetReport(
            as_of_date=as_of_date,
            store_id=store_id,
            assets=assets,
            liabilities=liabilities,
            equity=equity,
            total_assets=assets.total,
            total_liabilities=liabilities.total,
            total_equity=equity.total,
            unclosed_earnings=unclosed,
            total_liabilities_and_equity=liabilities_and_equity,
            is_balanced=assets.total == liabilities_and_equity,
        )

    def profit_and_loss(
        self,
        from_date: date,
        to_date: date,
        store_id: str | None = None,
    ) -> ProfitAndLossReport:
        """
        Income and expense movement over the closed range [from_date, to_date].

        Revenue is credit-positive, expenses debit-positive.
        """
        if from_date > to_date:
            raise ValueError(f"from_date {from_date} is after to_date {to_date}")

        totals = self._ledger.totals_by_account(
            as_of_date=to_date, from_date=from_date, store_id=store_id
        )
        movements = [
            (account, totals[account.id].net)
            for account in self._accounts()
            if account.id in totals and totals[account.id].net != ZERO
        ]
        grouped = self._partition(movements)

        revenue = self._section(StatementSection.INCOME, grouped[StatementSection.INCOME])
        expenses = self._section(StatementSection.EXPENSES, grouped[StatementSection.EXPENSES])
        gross_profit = revenue.total - expenses.total

        return ProfitAndLossReport(
            from_date=from_date,
            to_date=to_date,
            store_id=store_id,
            revenue=revenue,
            expenses=expenses,
            total_revenue=revenue.total,
            total_expenses=expenses.total,
            gross_profit=gross_profit,
            net_profit=gross_profit,
        )

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def _headline(self, account_code: str, as_of_date: date, store_id: str | None) -> Decimal:
        # Unconfigured headline accounts read as zero
        exists = self.session.execute(
            select(Account.id).where(Account.code == account_code)
        ).first()
        if exists is None:
            return ZERO
        return self.account_balance(account_code, as_of_date, store_id=store_id).balance

    def financial_dashboard(
        self,
        as_of_date: date,
        store_id: str | None = None,
        from_date: date | None = None,
    ) -> FinancialDashboard:
        accounts = self.policy.accounts
        return FinancialDashboard(
            as_of_date=as_of_date,
            store_id=store_id,
            revenue=self._headline(accounts.sales, as_of_date, store_id),
            expenses=self._headline(accounts.expenses, as_of_date, store_id),
            cash=self._headline(accounts.cash, as_of_date, store_id),
            bank=self._headline(accounts.bank, as_of_date, store_id),
            receivables=self._headline(accounts.accounts_receivable, as_of_date, store_id),
            payables=self._headline(accounts.accounts_payable, as_of_date, store_id),
            withholding=self._withholding.summary(
                store_id=store_id, from_date=from_date, to_date=as_of_date
            ),
        )

