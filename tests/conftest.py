import pytest

from formbridge.config import Settings
from formbridge.services.activity_log import ActivityLog
from formbridge.services.processor import SurveyProcessor

from fakes import Clock, MemoryStore


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def memory_store(clock):
    return MemoryStore(clock)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        properties_path=tmp_path / "properties.yaml",
        storage={"master_workbook": tmp_path / "master.xlsx", "data_dir": tmp_path},
        known_surveys=[
            {"id": "KNOWN1", "name": "Intro to Machine Learning"},
            {"id": "KNOWN2", "name": "Data Engineering 101"},
        ],
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_processor(memory_store, test_settings, sleeps):
    def _make(client, properties=None):
        return SurveyProcessor(
            client=client,
            store=memory_store,
            settings=test_settings,
            activity=ActivityLog(memory_store, clock=memory_store.clock),
            properties=properties,
            sleep=sleeps.append,
        )

    return _make
