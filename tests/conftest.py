"""pytest configuration and fixtures for biomewatch tests."""

import pytest

from biomewatch.core.events import EventChannel
from biomewatch.core.logs.reader import SafeLogReader
from biomewatch.core.monitor.process_registry import ProcessRegistry
from biomewatch.core.parsing.extractor import StateExtractor
from biomewatch.core.states.catalog import default_catalog
from tests.factories import FakeProcessTable


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def extractor(catalog):
    return StateExtractor(catalog)


@pytest.fixture
def scratch(tmp_path):
    d = tmp_path / "scratch"
    d.mkdir()
    return d


@pytest.fixture
def reader(scratch):
    return SafeLogReader(scratch)


@pytest.fixture
def process_table():
    return FakeProcessTable()


@pytest.fixture
def registry(process_table):
    return ProcessRegistry(["RobloxPlayerBeta.exe", "Windows10Universal"], process_iter=process_table)


@pytest.fixture
def channel():
    return EventChannel()
