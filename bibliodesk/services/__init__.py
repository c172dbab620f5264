"""BiblioDesk - Services Package

This package contains the application services built on top of the DAOs:
- Authentication and password hashing (auth.py)
- Loan circulation: issue, return, renew, overdue refresh (circulation.py)
- Plain-text report generation (reports.py)
"""
