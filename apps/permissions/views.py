from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .gate import Action, Module, accessible_modules, can, level_for, role_for_user


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_permissions(request):
    """
    Effective permissions of the caller

    GET /api/v1/permissions/me/
    """
    role = role_for_user(request.user)
    modules = accessible_modules(role)

    return Response(
        {
            "role": role.value,
            "modules": {
                module.value: {
                    "level": level_for(role, module).name.lower(),
                    "actions": [action.value for action in Action if can(role, module, action)],
                }
                for module in modules
            },
            "all_modules": [module.value for module in Module],
        }
    )
