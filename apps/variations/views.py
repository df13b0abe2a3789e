from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.generics import get_object_or_404
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit

from apps.audit.services import AuditService
from apps.core.errors import PermissionDeniedError
from apps.permissions.drf import ModulePermission
from apps.permissions.gate import Action, Module, decide, role_for_user, status_change_action
from .models import Variation, VariationAttachment
from .serializers import VariationSerializer, VariationStatusSerializer
from .services import ENTITY_TYPE, VariationAttachmentService, VariationService, variation_diff_logger

audit_logger = variation_diff_logger()
variation_service = VariationService(audit_logger=audit_logger)
attachment_service = VariationAttachmentService(audit_logger=audit_logger)


def _flag(value) -> bool:
    return str(value).lower() in ("1", "true", "yes")


class VariationViewSet(viewsets.GenericViewSet):
    """
    Variations (change orders) of a project

    Every write goes through VariationService, which keeps the per-project
    read cache coherent; field-level diffs are logged after updates.
    """

    queryset = Variation.objects.all()
    serializer_class = VariationSerializer
    permission_classes = [IsAuthenticated, ModulePermission]
    permission_module = Module.VARIATIONS
    permission_actions = {
        "change_status": Action.EDIT,
        "send_email": Action.SEND_EMAIL,
        "audit_trail": Action.VIEW,
        "attachments": Action.VIEW,
        "upload_attachment": Action.EDIT,
        "delete_attachment": Action.EDIT,
        "summary": Action.VIEW,
    }
    owner_field = "requested_by"

    def list(self, request):
        """
        GET /api/v1/variations/?project_id=<uuid>&force_refresh=true
        """
        records = variation_service.fetch_variations(request.query_params.get("project_id"), force_refresh=_flag(request.query_params.get("force_refresh")))

        page = self.paginate_queryset(records)
        if page is not None:
            return self.get_paginated_response(page)
        return Response(records)

    def create(self, request):
        """
        POST /api/v1/variations/
        {
            "project_id": "uuid",
            "title": "...",
            "description": "...",
            "costImpact": 1200,
            "timeImpact": 3,
            "clientEmail": "client@example.com",
            ...
        }
        """
        form_data = {key: request.data.get(key) for key in request.data}
        project_id = form_data.pop("project_id", None)

        record = variation_service.create_variation(project_id, form_data, request.user)
        return Response(record, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(variation_service.to_record(self.get_object()))

    def partial_update(self, request, pk=None):
        original = variation_service.to_record(self.get_object())
        record = variation_service.update_variation(pk, request.data, request.user)

        audit_logger.log_field_changes(pk, original, record, user=request.user)
        return Response(record)

    def destroy(self, request, pk=None):
        self.get_object()
        variation_service.delete_variation(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        """
        POST /api/v1/variations/<id>/status/
        {"status": "approved", "comments": "..."}
        """
        variation = self.get_object()

        serializer = VariationStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        to_status = serializer.validated_data["status"]

        decision = decide(role_for_user(request.user), Module.VARIATIONS, status_change_action(variation.status, to_status))
        if not decision:
            raise PermissionDeniedError(decision.reason)

        record = variation_service.change_status(pk, to_status, request.user, comments=serializer.validated_data["comments"] or None)
        return Response(record)

    @action(detail=True, methods=["post"], url_path="send-email")
    @method_decorator(ratelimit(key="user", rate="10/m", method="POST", block=False))
    def send_email(self, request, pk=None):
        """
        Email the variation to its client
        Rate limited to 10 requests per minute per user

        POST /api/v1/variations/<id>/send-email/
        """
        if getattr(request, "limited", False):
            return Response(
                {"error": "Rate limit exceeded", "detail": "Maximum 10 variation emails per minute. Please try again later."},
                status=status.HTTP_429_TOO_MANY_REQUESTS,
            )

        self.get_object()
        return Response(variation_service.send_email(pk, request.user))

    @action(detail=True, methods=["get"], url_path="audit-trail")
    def audit_trail(self, request, pk=None):
        """GET /api/v1/variations/<id>/audit-trail/ (newest first)"""
        variation = self.get_object()
        return Response(AuditService.get_history(ENTITY_TYPE, variation.pk))

    @action(detail=True, methods=["get"])
    def attachments(self, request, pk=None):
        """GET /api/v1/variations/<id>/attachments/"""
        variation = self.get_object()
        return Response(attachment_service.list_attachments(variation.pk))

    @attachments.mapping.post
    def upload_attachment(self, request, pk=None):
        """POST /api/v1/variations/<id>/attachments/ (multipart, field "file")"""
        variation = self.get_object()

        uploaded_file = request.FILES.get("file")
        if uploaded_file is None:
            return Response({"error": "No file provided", "code": "MISSING_FILE"}, status=status.HTTP_400_BAD_REQUEST)

        attachment = attachment_service.upload_attachment(variation, uploaded_file, request.user)
        return Response(attachment, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"attachments/(?P<attachment_id>[^/.]+)")
    def delete_attachment(self, request, pk=None, attachment_id=None):
        """DELETE /api/v1/variations/<id>/attachments/<attachment_id>/"""
        variation = self.get_object()

        attachment = get_object_or_404(VariationAttachment, variation=variation, pk=attachment_id)

        attachment_service.delete_attachment(attachment, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"])
    def summary(self, request):
        """GET /api/v1/variations/summary/?project_id=<uuid>"""
        records = variation_service.fetch_variations(request.query_params.get("project_id"))
        return Response(variation_service.summarize(records))
