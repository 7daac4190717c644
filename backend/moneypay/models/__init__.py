from .accounts import Account, StateSetting
from .ledger import TransactionRecord, LedgerIntent
from .withdrawals import WithdrawalRequest
from .commissions import CommissionRule, TieredCommission, CommissionTier
from .notifications import Notification

__all__ = [
    'Account', 'StateSetting',
    'TransactionRecord', 'LedgerIntent',
    'WithdrawalRequest',
    'CommissionRule', 'TieredCommission', 'CommissionTier',
    'Notification',
]
