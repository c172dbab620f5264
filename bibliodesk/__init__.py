"""BiblioDesk - Library Management Package

This package contains the application modules:
- Configuration (config.py)
- Database connection pool and schema (database.py)
- Entities (models.py) and tagged results (results.py)
- Data-access objects (dao/)
- Authentication, circulation and reports (services/)
- Library facade (library.py)
- CLI (cli.py) and HTTP API (api.py)
"""

__version__ = "1.0.0"
