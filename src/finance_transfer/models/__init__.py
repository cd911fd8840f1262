"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from finance_transfer.models.artifact import Artifact
from finance_transfer.models.budget import Budget
from finance_transfer.models.category import Category
from finance_transfer.models.goal import Goal
from finance_transfer.models.operation import Operation
from finance_transfer.models.transaction import Transaction
from finance_transfer.models.user import User

__all__ = [
    "Artifact",
    "Budget",
    "Category",
    "Goal",
    "Operation",
    "Transaction",
    "User",
]
