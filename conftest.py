import pytest

@pytest.fixture(autouse=True)
def _test_settings(settings):
    # Prevent SecurityMiddleware from forcing https://testserver/...
    settings.SECURE_SSL_REDIRECT = False

    # Prevent "secure cookie" behavior from interfering with session auth in tests
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0

    # Never call a real release workflow endpoint from tests
    settings.BATCH_RELEASE_WORKFLOW = {
        **settings.BATCH_RELEASE_WORKFLOW,
        "URL": "",
        "TOKEN": "",
        "TIMEOUT": 1.0,
    }
