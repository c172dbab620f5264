from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional

from bibliodesk.dao.loans import LoanDAO
from bibliodesk.models import Loan, LoanStatus
from bibliodesk.results import Result
from bibliodesk.validators import validate_day_count

logger = logging.getLogger(__name__)


class CirculationService:
    """Loan lifecycle: PENDING -> (RENEWED | OVERDUE)* -> RETURNED.

    Stock moves with the loan inside the DAO's transactions, so a failure
    leaves both the loan and the book untouched.
    """

    def __init__(self, loans: LoanDAO, default_loan_days: int = 14,
                 max_loan_days: int = 90, max_renewal_days: int = 30) -> None:
        self.loans = loans
        self.default_loan_days = default_loan_days
        self.max_loan_days = max_loan_days
        self.max_renewal_days = max_renewal_days

    def issue_loan(self, user_id: int, book_id: int, days: Optional[int] = None,
                   loan_date: Optional[date] = None, notes: Optional[str] = None) -> Result:
        """Lend one copy of ``book_id`` to ``user_id`` for ``days`` days."""
        days = self.default_loan_days if days is None else days
        validate_day_count(days, self.max_loan_days, "Loan days")
        loan_date = loan_date or date.today()
        loan = Loan(
            user_id=user_id,
            book_id=book_id,
            loan_date=loan_date,
            expected_return_date=loan_date + timedelta(days=days),
            notes=notes,
        )
        result = self.loans.create(loan)
        if not result.is_ok:
            logger.info(f"Loan of book {book_id} to user {user_id} rejected: {result.message}")
        return result

    def return_loan(self, loan_id: int, today: Optional[date] = None) -> Result:
        """Mark the loan RETURNED today and put the copy back on the shelf."""
        return self.loans.mark_returned(loan_id, today or date.today())

    def renew_loan(self, loan_id: int, days: int) -> Result:
        """Push the expected return date ``days`` days later and mark the loan RENEWED.

        Allowed from any non-returned state, including OVERDUE. The status is
        set to RENEWED even if the new date is still in the past; the next
        :meth:`refresh_overdue` flags it again in that case.
        """
        validate_day_count(days, self.max_renewal_days, "Renewal days")
        found = self.loans.get(loan_id)
        if not found.is_ok:
            return found
        loan: Loan = found.value
        if loan.status is LoanStatus.RETURNED:
            return Result.conflict(f"Loan {loan_id} was already returned and cannot be renewed.")
        loan.expected_return_date = loan.expected_return_date + timedelta(days=days)
        loan.status = LoanStatus.RENEWED
        result = self.loans.update(loan)
        if result.is_ok:
            logger.info(f"Loan {loan_id} renewed for {days} days")
        return result

    def refresh_overdue(self, today: Optional[date] = None) -> Result:
        """Flag every PENDING/RENEWED loan past its expected date as OVERDUE.

        Running it again without intervening changes updates nothing.
        """
        return self.loans.mark_overdue(today or date.today())

    def overdue_loans(self, today: Optional[date] = None) -> List[Loan]:
        """Refresh overdue flags, then list the overdue loans."""
        today = today or date.today()
        self.refresh_overdue(today)
        return self.loans.list_overdue(today)
