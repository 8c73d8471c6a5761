# backend/modules/tax/tests/__init__.py

"""
Test suite for enhanced tax services (AUR-304)

This package contains comprehensive tests for:
- Tax calculation engine with multi-jurisdiction support
- Tax compliance and filing services
- Tax filing automation
- External tax service integrations
- API endpoints and permissions
"""
