from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import VariationViewSet

router = DefaultRouter()
router.register(r"variations", VariationViewSet, basename="variation")

urlpatterns = [
    path("", include(router.urls)),
]
