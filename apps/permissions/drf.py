from rest_framework.permissions import BasePermission

from .gate import Action, decide, role_for_user

DEFAULT_VIEW_ACTIONS = {
    "list": Action.VIEW,
    "retrieve": Action.VIEW,
    "create": Action.CREATE,
    "update": Action.EDIT,
    "partial_update": Action.EDIT,
    "destroy": Action.DELETE,
}


class ModulePermission(BasePermission):
    """
    DRF adapter over the permission gate

    Views declare ``permission_module`` and may extend the action mapping with
    ``permission_actions`` for custom @action routes.
    """

    message = "You do not have permission to perform this action."

    def _action_for(self, view):
        mapping = dict(DEFAULT_VIEW_ACTIONS)
        mapping.update(getattr(view, "permission_actions", {}))
        return mapping.get(getattr(view, "action", None), Action.VIEW)

    def has_permission(self, request, view):
        module = getattr(view, "permission_module", None)
        if module is None:
            return True

        action = self._action_for(view)
        # ownership is settled per object
        if action in (Action.EDIT, Action.DELETE) and getattr(view, "detail", False):
            return decide(role_for_user(request.user), module, Action.VIEW).allowed

        decision = decide(role_for_user(request.user), module, action)
        if not decision:
            self.message = decision.reason
        return decision.allowed

    def has_object_permission(self, request, view, obj):
        module = getattr(view, "permission_module", None)
        if module is None:
            return True

        owner_field = getattr(view, "owner_field", None)
        is_owner = bool(owner_field) and getattr(obj, f"{owner_field}_id", None) == request.user.pk

        decision = decide(role_for_user(request.user), module, self._action_for(view), is_owner=is_owner)
        if not decision:
            self.message = decision.reason
        return decision.allowed
