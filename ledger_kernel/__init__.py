"""
Ledger Kernel

The general-ledger core of the business application:
- Chart of accounts with a locked account type once posted
- Append-only ledger lines
- Balanced multi-line journal entries with an approval/posting lifecycle
- Reversal by offsetting entry, never by edit
- Trial balance, balance sheet and profit & loss as of any date
- Hash-chained audit trail of every state transition
"""

__version__ = "0.1.0"
