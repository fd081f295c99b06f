from pathlib import Path

from formbridge.config import Settings
from formbridge.properties import PropertiesStore, mask_token

EXAMPLE = Path(__file__).resolve().parents[1] / "config" / "settings.example.yaml"


def test_example_settings_load():
    cfg = Settings.load(EXAMPLE)
    assert cfg.storage.backend == "workbook"
    assert cfg.processing.max_retries == 3
    assert cfg.scheduler.daily_at == "09:00"
    assert [s.name for s in cfg.known_surveys][0] == "Intro to Machine Learning"
    assert cfg.find_known_survey("FORM_ID_2").name == "Data Engineering 101"
    assert cfg.find_known_survey("missing") is None


def test_environment_overrides_nested_values(monkeypatch):
    monkeypatch.setenv("STORAGE__BACKEND", "google")
    monkeypatch.setenv("TYPEFORM__PAGE_SIZE", "50")
    cfg = Settings()
    assert cfg.storage.backend == "google"
    assert cfg.typeform.page_size == 50


def test_properties_store_persists(tmp_path):
    path = tmp_path / "nested" / "properties.yaml"
    PropertiesStore(path).set("TYPEFORM_TOKEN", "abc")
    assert PropertiesStore(path).get("TYPEFORM_TOKEN") == "abc"
    assert PropertiesStore(tmp_path / "absent.yaml").all() == {}


def test_mask_token():
    assert mask_token("tfp_abcdefghijklmnop1234") == "tfp_abcdef...1234"
    assert mask_token("short") == "sh..."
    assert mask_token(None) == ""
