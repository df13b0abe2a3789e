import uuid

import pytest
from django.core.cache import cache

from apps.core.context import AppContext, UserSession
from apps.core.notifications import Notifier
from apps.permissions.gate import Role


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def project_id():
    return str(uuid.uuid4())


@pytest.fixture
def session():
    return UserSession(user_id=str(uuid.uuid4()), user_name="Pat Manager", email="pat@example.com", role=Role.PROJECT_MANAGER)


@pytest.fixture
def make_context(notifier):
    contexts = []

    def factory(role=Role.PROJECT_MANAGER, user_id=None):
        session = UserSession(user_id=user_id or str(uuid.uuid4()), user_name=f"{role.value} user", email=f"{role.value}@example.com", role=role)
        context = AppContext(session, notifier=notifier).open()
        contexts.append(context)
        return context

    yield factory

    for context in contexts:
        context.close()


@pytest.fixture
def manager(django_user_model):
    return django_user_model.objects.create_user(email="pm@example.com", password="testpass123", role=Role.PROJECT_MANAGER.value, first_name="Pat", last_name="Manager")


@pytest.fixture
def subcontractor(django_user_model):
    return django_user_model.objects.create_user(email="sub@example.com", password="testpass123", role=Role.SUBCONTRACTOR.value)


@pytest.fixture
def estimator(django_user_model):
    return django_user_model.objects.create_user(email="est@example.com", password="testpass123", role=Role.ESTIMATOR.value)
