from __future__ import annotations

import pytest

from helpers import build_test_settings
from roombook.repository.data_repository import DataRepository
from roombook.utils.config import Settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return build_test_settings(tmp_path)


@pytest.fixture
def repository(settings) -> DataRepository:
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_default_rules()
    return repository
