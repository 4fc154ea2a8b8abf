"""Aggregate model imports for Alembic auto-detection and metadata.create_all."""

# Schema store
from app.models.model import Model, Property, PropertyType  # noqa: F401
from app.models.workflow import Workflow, WorkflowState, WorkflowStateTransition  # noqa: F401
from app.models.wizard import Wizard, WizardStep  # noqa: F401

# Object store
from app.models.data_object import DataObject  # noqa: F401

# Runs / audit
from app.models.wizard import WizardRun, WizardRunStatus  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
