# backend/modules/orders/__init__.py
