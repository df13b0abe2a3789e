from django.urls import path
from .views import my_permissions

urlpatterns = [
    path("me/", my_permissions, name="my-permissions"),
]
