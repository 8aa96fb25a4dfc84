"""
AccountRegistry -- the chart of accounts.

Responsibility:
    Creates, deactivates and looks up accounts; walks the account tree; and
    answers "what is this account's balance as of date D".

Architecture position:
    Kernel > Services.  Reads ledger aggregates through LedgerSelector.
    Used by LedgerStore, JournalEngine, the posters and BalanceCalculator.

Invariants enforced:
    - Account codes are unique.
    - Tree depth never exceeds MAX_ACCOUNT_LEVEL (5).
    - account_type is locked once any ledger line references the account
      (checked here, and again by the ORM listener).
    - Accounts are deactivated, never deleted.

Failure modes:
    - DuplicateAccountCodeError, AccountNotFoundError,
      HierarchyDepthExceededError, AccountTypeLockedError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.account_types import normal_balance_for
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import AccountSpec
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AccountTypeLockedError,
    DuplicateAccountCodeError,
    HierarchyDepthExceededError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    MAX_ACCOUNT_LEVEL,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")

PATH_SEPARATOR = " > "


class AccountRegistry(BaseService):
    """
    Chart of accounts service.

    Contract:
        Every mutation is flushed and audited.  Lookups raise
        AccountNotFoundError rather than returning None, except
        ``find_account``.

    Non-goals:
        - Does NOT delete accounts.
        - Does NOT store balances; they are derived on every call.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_account(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()

    def get_account(self, code: str) -> Account:
        account = self.find_account(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def list_accounts(self, active_only: bool = False) -> list[Account]:
        stmt = select(Account).order_by(Account.code)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self.session.execute(stmt).scalars().all())

    def get_children(self, code: str) -> list[Account]:
        parent = self.get_account(code)
        return list(
            self.session.execute(
                select(Account).where(Account.parent_id == parent.id).order_by(Account.code)
            ).scalars().all()
        )

    def account_path(self, code: str) -> str:
        """Names from the root down, e.g. ``Liabilities > TDS Payable``."""
        names: list[str] = []
        account: Account | None = self.get_account(code)
        while account is not None:
            names.append(account.name)
            account = account.parent
        return PATH_SEPARATOR.join(reversed(names))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_account(self, spec: AccountSpec, actor_id: UUID) -> Account:
        """
        Add an account to the chart.

        Raises:
            DuplicateAccountCodeError: The code is taken.
            AccountNotFoundError: parent_code does not exist.
            HierarchyDepthExceededError: The account would sit below level 5.
        """
        if self.find_account(spec.code) is not None:
            raise DuplicateAccountCodeError(spec.code)

        parent: Account | None = None
        level = 1
        if spec.parent_code is not None:
            parent = self.get_account(spec.parent_code)
            level = parent.level + 1
            if level > MAX_ACCOUNT_LEVEL:
                raise HierarchyDepthExceededError(spec.code, level, MAX_ACCOUNT_LEVEL)

        account = Account(
            code=spec.code,
            name=spec.name,
            account_type=spec.account_type,
            account_subtype=spec.account_subtype,
            parent_id=parent.id if parent else None,
            level=level,
            is_active=True,
            is_system_account=spec.is_system_account,
            is_cash_account=spec.is_cash_account,
            is_bank_account=spec.is_bank_account,
            opening_balance=round_money(spec.opening_balance),
            opening_balance_side=spec.opening_balance_side,
            description=spec.description,
            created_by_id=actor_id,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateAccountCodeError(spec.code) from None

        self._auditor.record_account_created(account, actor_id)

        logger.info(
            "account_created",
            extra={
                "account_code": account.code,
                "account_type": account.account_type.value,
                "level": level,
                "parent_code": spec.parent_code,
            },
        )
        return account

    def deactivate(
        self,
        code: str,
        actor_id: UUID,
        as_of_date: date | None = None,
    ) -> Account:
        """
        Mark an account inactive.  New postings to it are rejected.

        Allowed with a nonzero balance; a warning is logged.  Deactivating
        an inactive account is a no-op.
        """
        account = self.get_account(code)
        if not account.is_active:
            logger.debug("account_already_inactive", extra={"account_code": code})
            return account

        balance = self.get_net_balance(code, as_of_date or self.clock.today())
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()

        if balance != ZERO:
            logger.warning(
                "account_deactivated_with_balance",
                extra={"account_code": code, "balance": str(balance)},
            )
        else:
            logger.info("account_deactivated", extra={"account_code": code})

        self._auditor.record_account_deactivated(account, actor_id, balance)
        return account

    def change_account_type(
        self,
        code: str,
        new_type: AccountType,
        actor_id: UUID,
    ) -> Account:
        """
        Reclassify an account that has never been posted to.

        Raises:
            AccountTypeLockedError: A ledger line references the account.
        """
        account = self.get_account(code)
        new_type = AccountType(new_type)
        if account.account_type == new_type:
            return account

        if self._ledger.has_lines(account.id):
            logger.warning(
                "account_type_change_blocked",
                extra={"account_code": code, "current_type": account.account_type.value},
            )
            raise AccountTypeLockedError(code, account.account_type.value)

        old_type = account.account_type
        account.account_type = new_type
        account.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_account_type_changed(account, old_type, actor_id)
        logger.info(
            "account_type_changed",
            extra={
                "account_code": code,
                "from_type": old_type.value,
                "to_type": new_type.value,
            },
        )
        return account

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_net_balance(
        self,
        code: str,
        as_of_date: date,
        store_id: str | None = None,
    ) -> Decimal:
        """
        Debit-positive balance: signed opening + debits - credits.

        Only balance-bearing lines dated on or before ``as_of_date`` count.
        The opening balance is a chart-level figure and is left out when
        the balance is scoped to one store.
        """
        account = self.get_account(code)
        totals = self._ledger.account_totals(account.id, as_of_date=as_of_date, store_id=store_id)
        opening = account.signed_opening_balance if store_id is None else ZERO
        return round_money(opening + totals.net)

    def get_balance(
        self,
        code: str,
        as_of_date: date,
        store_id: str | None = None,
    ) -> Decimal:
        """
        Balance in the account's normal orientation.

        Debit-normal accounts are reported debit-positive, credit-normal
        accounts credit-positive: SALES credited 1000 returns 1000.
        """
        account = self.get_account(code)
        net = self.get_net_balance(code, as_of_date, store_id=store_id)
        if normal_balance_for(account.account_type) == NormalBalance.CREDIT:
            return ZERO - net
        return net
