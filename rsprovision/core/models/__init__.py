"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from rsprovision.core.models import Action, Receipt, Recipe, Step, ProvisionConfig
"""

from rsprovision.core.models.action import Action, Receipt
from rsprovision.core.models.provision import ProvisionConfig, Timeouts
from rsprovision.core.models.recipe import PHASES, Recipe, Step

__all__ = [
    "PHASES",
    # action.py
    "Action",
    # provision.py
    "ProvisionConfig",
    "Receipt",
    # recipe.py
    "Recipe",
    "Step",
    "Timeouts",
]
