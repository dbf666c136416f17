"""Library Management System - core application package

This package contains:
- Inventory ledger (library.py)
- Data models (book.py) and ledger errors (exceptions.py)
- Seed data (seed.py)
- CLI interface (main.py) and HTTP API (api.py)
- Settings (config.py)
"""
