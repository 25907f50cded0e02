from .loan import Loan, LoanStatus
from .user import User, UserRole

__all__ = ['Loan', 'LoanStatus', 'User', 'UserRole']
