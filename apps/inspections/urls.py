from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import QAInspectionViewSet

router = DefaultRouter()
router.register(r"qa-inspections", QAInspectionViewSet, basename="qa-inspection")

urlpatterns = [
    path("", include(router.urls)),
]
