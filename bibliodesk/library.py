import logging
from typing import Any, Dict, Optional

from bibliodesk.config import Settings, settings as default_settings
from bibliodesk.dao import BookDAO, LoanDAO, UserDAO
from bibliodesk.database import ConnectionPool, initialize_database
from bibliodesk.models import LoanStatus
from bibliodesk.services.auth import AuthService
from bibliodesk.services.circulation import CirculationService
from bibliodesk.services.reports import ReportService

logger = logging.getLogger(__name__)


class Library:
    """Owns the connection pool and wires the DAOs and services around it.

    One instance per process (or per test). Call :meth:`close` on shutdown.
    """

    def __init__(self, db_file: Optional[str] = None, pool: Optional[ConnectionPool] = None,
                 config: Optional[Settings] = None) -> None:
        self.settings = config or default_settings
        self.pool = initialize_database(db_file or self.settings.database_file,
                                        size=self.settings.pool_size, pool=pool)

        self.books = BookDAO(self.pool)
        self.users = UserDAO(self.pool)
        self.loans = LoanDAO(self.pool)

        self.auth = AuthService(self.users)
        self.circulation = CirculationService(
            self.loans,
            default_loan_days=self.settings.default_loan_days,
            max_loan_days=self.settings.max_loan_days,
            max_renewal_days=self.settings.max_renewal_days,
        )
        self.reports = ReportService(self.books, self.users, self.loans, self.circulation,
                                     reports_dir=self.settings.reports_dir, app_name=self.settings.app_name)

    def seed_admin(self) -> None:
        """Create the configured administrator if no account exists yet."""
        self.auth.ensure_admin(self.settings.admin_username, self.settings.admin_password)

    def get_statistics(self) -> Dict[str, Any]:
        """Dashboard counts."""
        return {
            "total_books": self.books.count(),
            "active_users": self.users.count_active(),
            "active_loans": (self.loans.count_by_status(LoanStatus.PENDING)
                             + self.loans.count_by_status(LoanStatus.RENEWED)),
            "overdue_loans": self.loans.count_by_status(LoanStatus.OVERDUE),
            "low_stock_books": len(self.books.list_low_stock(self.settings.low_stock_threshold)),
        }

    def close(self) -> None:
        self.pool.close()
