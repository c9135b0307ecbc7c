"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from posdesk.api.v1.endpoints import auth, loans, permissions, reminders, system

api_router = APIRouter()

# Auth (login, refresh, staff accounts)
api_router.include_router(auth.router)

# Permission snapshot, role preview, navigation
api_router.include_router(permissions.router)

# Customers, loans, payments
api_router.include_router(loans.router)

# Reminder runs, reminder history, loan analytics
api_router.include_router(reminders.router)

# Health, audit logs
api_router.include_router(system.router)
