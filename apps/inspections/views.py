from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from apps.audit.services import AuditService
from apps.core.errors import InputValidationError, PermissionDeniedError
from apps.permissions.drf import ModulePermission
from apps.permissions.gate import Action, Module, decide, role_for_user, status_change_action
from .models import QAInspection
from .serializers import QAInspectionSerializer
from .services import ENTITY_TYPE, InspectionService, inspection_diff_logger

audit_logger = inspection_diff_logger()
inspection_service = InspectionService(audit_logger=audit_logger)


class QAInspectionViewSet(viewsets.GenericViewSet):
    """
    QA inspections of a project with:
    - Optimistic locking (version-based conflict detection)
    - Review / approval workflow
    """

    queryset = QAInspection.objects.all()
    serializer_class = QAInspectionSerializer
    permission_classes = [IsAuthenticated, ModulePermission]
    permission_module = Module.QA_ITP
    permission_actions = {"audit_trail": Action.VIEW}
    owner_field = "inspector"

    def list(self, request):
        """GET /api/v1/qa-inspections/?project_id=<uuid>"""
        force_refresh = str(request.query_params.get("force_refresh", "")).lower() in ("1", "true", "yes")
        records = inspection_service.fetch_inspections(request.query_params.get("project_id"), force_refresh=force_refresh)

        page = self.paginate_queryset(records)
        if page is not None:
            return self.get_paginated_response(page)
        return Response(records)

    def create(self, request):
        """
        POST /api/v1/qa-inspections/
        {"project_id": "uuid", "title": "...", "trade": "...", "checklist": [...]}
        """
        data = {key: request.data.get(key) for key in request.data}
        project_id = data.pop("project_id", None)

        record = inspection_service.create_inspection(project_id, data, request.user)
        return Response(record, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(inspection_service.to_record(self.get_object()))

    def partial_update(self, request, pk=None):
        """
        PATCH /api/v1/qa-inspections/<id>/
        {"version": 3, "comments": "...", "status": "in_review"}

        Server responses:
        - 200 OK with the record at version + 1
        - 409 Conflict if the client version is stale
        """
        inspection = self.get_object()
        original = inspection_service.to_record(inspection)

        data = {key: request.data.get(key) for key in request.data}
        client_version = data.pop("version", None)
        if client_version is None:
            raise InputValidationError("Version is required.", "MISSING_VERSION")

        to_status = data.get("status")
        if to_status and to_status != inspection.status:
            decision = decide(role_for_user(request.user), Module.QA_ITP, status_change_action(inspection.status, to_status))
            if not decision:
                raise PermissionDeniedError(decision.reason)

        try:
            client_version = int(client_version)
        except (TypeError, ValueError):
            raise InputValidationError("Version must be an integer.", "INVALID_VERSION")

        record = inspection_service.update_inspection(pk, data, request.user, client_version=client_version)
        audit_logger.log_field_changes(pk, original, record, user=request.user)
        return Response(record)

    @action(detail=True, methods=["get"], url_path="audit-trail")
    def audit_trail(self, request, pk=None):
        """GET /api/v1/qa-inspections/<id>/audit-trail/ (newest first)"""
        inspection = self.get_object()
        return Response(AuditService.get_history(ENTITY_TYPE, inspection.pk))
