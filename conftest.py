import os
import django
from django.conf import settings
from django.test.utils import setup_test_environment, teardown_test_environment
import pytest

# Configure Django settings before any tests run
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'wms_admin.settings')
django.setup()


@pytest.fixture(scope='session', autouse=True)
def django_test_environment():
    """Set up Django test environment for the entire test session."""
    setup_test_environment()
    yield
    teardown_test_environment()


def _configure_mysql_session():
    from django.db import connection

    with connection.cursor() as cursor:
        cursor.execute("SET time_zone = '+00:00'")
        cursor.execute("SET sql_mode='STRICT_TRANS_TABLES'")


@pytest.fixture(autouse=True)
def enable_db_access_for_all_tests(db):
    """Enable database access for all tests automatically."""
    # Ensure timezone is set for each test in case connection is reset
    if settings.DATABASES['default']['ENGINE'] == 'django.db.backends.mysql':
        _configure_mysql_session()
    yield


@pytest.fixture(autouse=True)
def clear_rate_limit_counters():
    """Rate-limit counters live in the cache; start every test from zero."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
