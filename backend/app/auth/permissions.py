"""Permission names understood by the core.

The core does not decide who holds which permission: the effective set
arrives pre-resolved in the token claims. This module only names the
permissions routes ask for and answers "does this set satisfy that one".

Permission naming: `<resource>.<action>`
  Resources: models, objects, workflows, wizards, wizard_runs
  Actions:   read, write, manage, run
"""

from __future__ import annotations

# Grants every permission, including the wizard run ownership override
SUPERUSER = "*"


ALL_PERMISSIONS: set[str] = {
    # Schema store
    "models.read",
    "models.manage",

    # Data objects (single transitions + batch updates)
    "objects.read",
    "objects.write",

    # Workflow definitions
    "workflows.read",
    "workflows.manage",

    # Wizard definitions and runs
    "wizards.read",
    "wizards.manage",
    "wizards.run",
    "wizard_runs.manage",     # act on wizard runs owned by other users
}


def has_permission(user_permissions: list[str] | set[str] | frozenset[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return SUPERUSER in user_permissions or required in user_permissions
