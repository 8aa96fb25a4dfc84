"""
ExpensePoster -- turns approved expenses into posted journal entries.

Responsibility:
    Builds the two-line entry for an expense (debit the category's expense
    account, credit cash or bank) and posts it through the journal engine's
    pre-approved fast path.

Architecture position:
    Kernel > Services.  Called by the expense workflow.  Depends on
    JournalEngine only; account codes come from the PostingPolicy.

Invariants enforced:
    - The posted amount is amount + tax_amount.
    - CASH payments credit the cash account; every other method credits
      the bank account.
    - Expense postings bypass manual approval.

Failure modes:
    - Configuration errors (unknown or inactive account) come back as a
      failed PostingResult; nothing is written.
    - An unknown payment method comes back as INVALID_PAYMENT_METHOD.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    ExpenseEvent,
    JournalEntrySpec,
    JournalLineSpec,
    PostingResult,
)
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.exceptions import InvalidPaymentMethodError, LedgerKernelError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntryType
from ledger_kernel.models.ledger import PaymentMethod, TransactionType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_engine import JournalEngine

logger = get_logger("services.expense_poster")

EXPENSE_REFERENCE_TYPE = "expense"


class ExpensePoster(BaseService):
    """
    Posts expenses to the general ledger.

    Contract:
        post_expense() returns a PostingResult; it raises only on storage
        failures.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine: JournalEngine | None = None,
        policy: PostingPolicy | None = None,
    ):
        super().__init__(session, clock)
        self._engine = engine or JournalEngine(session, self.clock, policy=policy)
        self.policy = policy or self._engine.policy

    @staticmethod
    def _payment_method(expense: ExpenseEvent) -> PaymentMethod:
        try:
            return PaymentMethod(expense.payment_method)
        except ValueError as exc:
            raise InvalidPaymentMethodError(
                expense.payment_method, expense.expense_number
            ) from exc

    def payment_account_for(self, payment_method: PaymentMethod) -> str:
        if payment_method == PaymentMethod.CASH:
            return self.policy.accounts.cash
        return self.policy.accounts.bank

    def build_entry(self, expense: ExpenseEvent) -> JournalEntrySpec:
        """The balanced, pre-approved entry for one expense."""
        total = round_money(expense.total_amount)
        payment_method = self._payment_method(expense)
        expense_account = self.policy.expense_account_for(expense.category)
        payment_account = self.payment_account_for(payment_method)

        return JournalEntrySpec(
            entry_date=expense.expense_date,
            description=expense.description,
            entry_type=JournalEntryType.EXPENSE,
            transaction_type=TransactionType.EXPENSE,
            approval_required=False,
            reference_number=expense.expense_number,
            reference_type=EXPENSE_REFERENCE_TYPE,
            store_id=expense.store_id,
            vendor_id=expense.vendor_id,
            vendor_name=expense.vendor_name,
            payment_method=payment_method,
            lines=(
                JournalLineSpec.debit(
                    expense_account,
                    total,
                    sub_account=expense.category,
                    description=expense.description,
                ),
                JournalLineSpec.credit(
                    payment_account,
                    total,
                    sub_account=payment_method.value,
                    description=f"Payment for {expense.description}",
                ),
            ),
        )

    def post_expense(self, expense: ExpenseEvent, actor_id: UUID) -> PostingResult:
        if round_money(expense.total_amount) <= ZERO:
            logger.warning(
                "expense_posting_rejected",
                extra={"expense_number": expense.expense_number, "reason": "non_positive_total"},
            )
            return PostingResult.rejected(
                "INVALID_EXPENSE",
                f"Expense {expense.expense_number} has no positive total",
            )

        try:
            entry = self._engine.create_and_post(self.build_entry(expense), actor_id)
        except LedgerKernelError as exc:
            logger.warning(
                "expense_posting_rejected",
                extra={"expense_number": expense.expense_number, "error_code": exc.code},
            )
            return PostingResult.rejected(exc.code, str(exc))

        logger.info(
            "expense_posted",
            extra={
                "expense_number": expense.expense_number,
                "entry_number": entry.entry_number,
                "category": expense.category,
                "amount": str(entry.total_debit),
            },
        )
        return PostingResult.posted(entry.entry_number)
