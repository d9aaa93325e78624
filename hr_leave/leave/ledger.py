"""Balance ledger — quota reservation, confirmation and release.

Per (employee, leave type, accounting year) key the ledger tracks:

  - allotted: quota for the key (``None`` = uncapped, e.g. unpaid leave)
  - reserved: days held by requests awaiting a final decision
  - consumed: days spent by HR-approved requests

Invariants: ``reserved >= 0`` and, for capped types,
``consumed + reserved <= allotted``. Callers serialise access per key.
"""

from __future__ import annotations

import uuid
from typing import Mapping, Optional

from hr_leave.common.constants import STATUTORY_PERIOD, LeaveType
from hr_leave.common.exceptions import (
    InsufficientBalance,
    InvariantViolation,
    ValidationException,
)
from hr_leave.config import Settings, settings as app_settings
from hr_leave.leave.records import BalanceKey, BalanceRecord, utcnow


def default_allotments(cfg: Settings = app_settings) -> dict[LeaveType, Optional[int]]:
    """Quota per leave type from settings. ``None`` means uncapped."""
    return {
        LeaveType.paid: cfg.PAID_LEAVE_DAYS,
        LeaveType.sick: cfg.SICK_LEAVE_DAYS,
        LeaveType.maternity: cfg.MATERNITY_LEAVE_DAYS,
        LeaveType.unpaid: None,
    }


def accounting_period(leave_type: LeaveType, year: int) -> int:
    """Map a calendar year onto the period the type's allotment belongs to."""
    if leave_type is LeaveType.maternity:
        return STATUTORY_PERIOD
    return year


class BalanceLedger:
    """In-memory quota ledger, one ``BalanceRecord`` per key, created lazily."""

    def __init__(
        self,
        allotments: Optional[Mapping[LeaveType, Optional[int]]] = None,
    ) -> None:
        self._allotments = dict(allotments if allotments is not None else default_allotments())
        self._balances: dict[BalanceKey, BalanceRecord] = {}

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def key_for(employee_id: uuid.UUID, leave_type: LeaveType, year: int) -> BalanceKey:
        return BalanceKey(employee_id, leave_type, accounting_period(leave_type, year))

    def _account(self, key: BalanceKey) -> BalanceRecord:
        balance = self._balances.get(key)
        if balance is None:
            balance = BalanceRecord(
                employee_id=key.employee_id,
                leave_type=key.leave_type,
                year=key.year,
                allotted=self._allotments.get(key.leave_type),
            )
            self._balances[key] = balance
        return balance

    @staticmethod
    def _check_days(days: int) -> None:
        if days <= 0:
            raise ValidationException({"days": ["Day count must be positive."]})

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    def reserve(
        self, employee_id: uuid.UUID, leave_type: LeaveType, year: int, days: int,
    ) -> BalanceRecord:
        """Hold ``days`` against the quota. Raises InsufficientBalance."""
        self._check_days(days)
        balance = self._account(self.key_for(employee_id, leave_type, year))

        if balance.allotted is not None:
            available = balance.available
            if days > available:
                raise InsufficientBalance(requested=days, available=available)

        balance.reserved += days
        balance.updated_at = utcnow()
        return balance

    def confirm(
        self, employee_id: uuid.UUID, leave_type: LeaveType, year: int, days: int,
    ) -> BalanceRecord:
        """Move ``days`` from reserved to consumed."""
        self._check_days(days)
        key = self.key_for(employee_id, leave_type, year)
        balance = self._account(key)

        if balance.reserved < days:
            raise InvariantViolation(
                f"Cannot confirm {days} day(s) for {key}: only {balance.reserved} reserved."
            )

        balance.reserved -= days
        balance.consumed += days
        balance.updated_at = utcnow()
        return balance

    def release(
        self, employee_id: uuid.UUID, leave_type: LeaveType, year: int, days: int,
    ) -> BalanceRecord:
        """Return ``days`` of reservation to the available pool."""
        self._check_days(days)
        key = self.key_for(employee_id, leave_type, year)
        balance = self._account(key)

        if balance.reserved < days:
            raise InvariantViolation(
                f"Cannot release {days} day(s) for {key}: only {balance.reserved} reserved."
            )

        balance.reserved -= days
        balance.updated_at = utcnow()
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    def get_balance(
        self, employee_id: uuid.UUID, leave_type: LeaveType, year: int,
    ) -> BalanceRecord:
        """Return a detached copy of the balance for the key."""
        key = self.key_for(employee_id, leave_type, year)
        balance = self._balances.get(key)
        if balance is None:
            # Not materialised until first reservation
            return BalanceRecord(
                employee_id=key.employee_id,
                leave_type=key.leave_type,
                year=key.year,
                allotted=self._allotments.get(key.leave_type),
            )
        return balance.model_copy()

    # ─────────────────────────────────────────────────────────────────
    # Rollback / hydration
    # ─────────────────────────────────────────────────────────────────

    def snapshot(self, key: BalanceKey) -> Optional[BalanceRecord]:
        balance = self._balances.get(key)
        return balance.model_copy() if balance is not None else None

    def restore(self, key: BalanceKey, snapshot: Optional[BalanceRecord]) -> None:
        """Put the key back exactly as ``snapshot`` captured it."""
        if snapshot is None:
            self._balances.pop(key, None)
        else:
            self._balances[key] = snapshot.model_copy()

    def load(self, balance: BalanceRecord) -> None:
        """Adopt a persisted balance. Rejects records that break the invariants."""
        if balance.reserved < 0 or balance.consumed < 0:
            raise InvariantViolation(f"Negative counters in stored balance {balance.key}.")
        if balance.allotted is not None and balance.available < 0:
            raise InvariantViolation(f"Stored balance {balance.key} exceeds its allotment.")
        self._balances[balance.key] = balance.model_copy()

    def __len__(self) -> int:
        return len(self._balances)
