"""Database models for the workflow block engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.tenant import Tenant
from db.models.user import User
from db.models.project import Project
from db.models.workflow import Workflow, Section
from db.models.step import Step
from db.models.block import Block
from db.models.run import WorkflowRun, StepValue
from db.models.datavault import DatavaultTable, DatavaultColumn, DatavaultRow
from db.models.collection import Collection, CollectionRecord
from db.models.query import WorkflowQuery
from db.models.external_destination import ExternalDestination

__all__ = [
    "Tenant",
    "User",
    "Project",
    "Workflow",
    "Section",
    "Step",
    "Block",
    "WorkflowRun",
    "StepValue",
    "DatavaultTable",
    "DatavaultColumn",
    "DatavaultRow",
    "Collection",
    "CollectionRecord",
    "WorkflowQuery",
    "ExternalDestination",
]
