"""Data-access objects, one per table."""

from .books import BookDAO
from .users import UserDAO
from .loans import LoanDAO

__all__ = ["BookDAO", "UserDAO", "LoanDAO"]
