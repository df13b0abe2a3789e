"""
Permission gate: (role, module, action) -> decision

Roles, modules and actions are closed enumerations and the role x module
table is total, so every combination can be enumerated and tested. The gate
holds no state; it is safe to consult before every dispatch.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, List, Tuple


class Role(str, Enum):
    DEVELOPER = "developer"
    ORG_ADMIN = "org_admin"
    PROJECT_MANAGER = "project_manager"
    ESTIMATOR = "estimator"
    ADMIN = "admin"
    SITE_SUPERVISOR = "site_supervisor"
    SUBCONTRACTOR = "subcontractor"
    CLIENT = "client"


class Module(str, Enum):
    ADMIN_PANEL = "admin_panel"
    ORGANIZATION_PANEL = "organization_panel"
    PROJECTS = "projects"
    TASKS = "tasks"
    RFIS = "rfis"
    QA_ITP = "qa_itp"
    VARIATIONS = "variations"
    FINANCE = "finance"
    DOCUMENTS = "documents"
    PROGRAMME = "programme"
    DELIVERIES = "deliveries"
    HANDOVERS = "handovers"
    NOTES = "notes"
    ONBOARDING = "onboarding"
    DIAGNOSTICS = "diagnostics"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    APPROVE = "approve"
    SEND_EMAIL = "send_email"
    EXPORT = "export"
    MANAGE = "manage"


class PermissionLevel(IntEnum):
    NONE = 0
    READ = 1
    WRITE = 2
    ADMIN = 3


ACTION_LEVELS: Dict[Action, PermissionLevel] = {
    Action.VIEW: PermissionLevel.READ,
    Action.EXPORT: PermissionLevel.READ,
    Action.CREATE: PermissionLevel.WRITE,
    Action.EDIT: PermissionLevel.WRITE,
    Action.SEND_EMAIL: PermissionLevel.WRITE,
    Action.DELETE: PermissionLevel.ADMIN,
    Action.APPROVE: PermissionLevel.ADMIN,
    Action.MANAGE: PermissionLevel.ADMIN,
}

# owners may edit or delete their own records with write access
OWNER_ACTIONS = {Action.EDIT, Action.DELETE}

PROJECT_MODULES = (
    Module.PROJECTS,
    Module.VARIATIONS,
    Module.TASKS,
    Module.RFIS,
    Module.QA_ITP,
    Module.FINANCE,
    Module.DOCUMENTS,
    Module.PROGRAMME,
    Module.DELIVERIES,
    Module.HANDOVERS,
    Module.NOTES,
)

_N, _R, _W, _A = PermissionLevel.NONE, PermissionLevel.READ, PermissionLevel.WRITE, PermissionLevel.ADMIN

# Column order follows the Module enum
_ROWS: Dict[Role, Tuple[PermissionLevel, ...]] = {
    #                           admin org  proj task rfi  qa   var  fin  doc  prog deliv hand note onb  diag
    Role.DEVELOPER:            (_A,   _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,   _A,  _A,  _A,  _A),
    Role.ORG_ADMIN:            (_N,   _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,   _A,  _A,  _W,  _N),
    Role.ADMIN:                (_R,   _W,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,   _A,  _A,  _W,  _R),
    Role.PROJECT_MANAGER:      (_N,   _R,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,  _A,   _A,  _A,  _R,  _N),
    Role.ESTIMATOR:            (_N,   _N,  _R,  _R,  _R,  _R,  _W,  _W,  _R,  _R,  _N,   _N,  _W,  _R,  _N),
    Role.SITE_SUPERVISOR:      (_N,   _N,  _R,  _W,  _W,  _W,  _R,  _N,  _W,  _R,  _W,   _W,  _W,  _R,  _N),
    Role.SUBCONTRACTOR:        (_N,   _N,  _R,  _R,  _W,  _W,  _R,  _N,  _R,  _R,  _R,   _N,  _W,  _R,  _N),
    Role.CLIENT:               (_N,   _N,  _R,  _N,  _N,  _N,  _R,  _N,  _R,  _R,  _N,   _N,  _N,  _N,  _N),
}

DEFAULT_MATRIX: Dict[Tuple[Role, Module], PermissionLevel] = {
    (role, module): level for role, levels in _ROWS.items() for module, level in zip(Module, levels)
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str

    def __bool__(self):
        return self.allowed


def level_for(role: Role, module: Module) -> PermissionLevel:
    return DEFAULT_MATRIX[(Role(role), Module(module))]


def decide(role: Role, module: Module, action: Action, *, is_owner: bool = False) -> Decision:
    """
    Decide whether ``role`` may perform ``action`` on ``module``

    Accepts enum members or their string values; unknown strings raise
    ``ValueError`` rather than silently denying.
    """
    role, module, action = Role(role), Module(module), Action(action)

    if role is Role.DEVELOPER:
        return Decision(True, "developer bypass")

    if role is Role.ORG_ADMIN and module in PROJECT_MODULES:
        return Decision(True, "organization admin")

    level = DEFAULT_MATRIX[(role, module)]
    required = ACTION_LEVELS[action]

    if level >= required:
        return Decision(True, f"{role.value} has {level.name.lower()} on {module.value}")

    if is_owner and action in OWNER_ACTIONS and level >= PermissionLevel.WRITE:
        return Decision(True, f"{role.value} owns the record")

    return Decision(False, f"{role.value} needs {required.name.lower()} on {module.value} to {action.value}")


def can(role: Role, module: Module, action: Action, *, is_owner: bool = False) -> bool:
    return decide(role, module, action, is_owner=is_owner).allowed


def status_change_action(from_status: str, to_status: str) -> Action:
    """Approving, rejecting and unlocking an approved record need approval rights"""
    if to_status in ("approved", "rejected") or from_status == "approved":
        return Action.APPROVE
    return Action.EDIT


def accessible_modules(role: Role) -> List[Module]:
    return [module for module in Module if can(role, module, Action.VIEW)]


def role_for_user(user) -> Role:
    """Resolve the effective role of a user; developers override their stored role"""
    if user is None or not getattr(user, "is_authenticated", False):
        return Role.CLIENT
    if getattr(user, "is_developer", False):
        return Role.DEVELOPER
    try:
        return Role(getattr(user, "role", Role.CLIENT.value))
    except ValueError:
        return Role.CLIENT
