import pytest

from soko.core.config import get_settings
from soko.services.item_normalizer import dictionary_registry


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests patch env vars; don't leak a cached Settings instance across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_dictionary():
    # Runtime mappings added by one test must not be visible to the next.
    dictionary_registry.reset()
    yield
    dictionary_registry.reset()
