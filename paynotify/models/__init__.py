"""
Database models - import all models here so Alembic can discover them.
"""
from paynotify.models.lead import Lead
from paynotify.models.client import Client

__all__ = [
    "Lead",
    "Client",
]
