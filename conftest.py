import pytest
from rest_framework.test import APIClient


DEFAULT_TEST_USER_PASSWORD = "revision-planner-password"  # noqa: S105


@pytest.fixture
def user_password():
    return DEFAULT_TEST_USER_PASSWORD


@pytest.fixture
def user(user_password):
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(
        username="student", email="student@example.com", password=user_password
    )


@pytest.fixture
def other_user(user_password):
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(
        username="other-student", email="other@example.com", password=user_password
    )


@pytest.fixture
def auth_client(user, user_password):
    client = APIClient()
    client.login(username=user.username, password=user_password)
    return client


@pytest.fixture
def anonymous_client():
    client = APIClient()
    return client


@pytest.fixture
def di_container():
    """Fixture to get the DI container."""
    from di_core.containers import container

    return container


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
