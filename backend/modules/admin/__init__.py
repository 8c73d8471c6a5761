# backend/modules/admin/__init__.py
