import os
import pytest
import yaml
from pathlib import Path
from bq_db_adapter.config import (
    AdapterConfig,
    get_adapter_home,
    load_config,
    table_name_from_template,
)
from bq_db_adapter.context import TenantContext
from bq_db_adapter.errors import ConfigurationError


def test_get_adapter_home_default(monkeypatch):
    monkeypatch.delenv("BQ_ADAPTER_HOME", raising=False)
    home = get_adapter_home()
    assert home == Path("~/.config/bq-db-adapter").expanduser()

def test_get_adapter_home_env_var(monkeypatch, tmp_path):
    custom_home = tmp_path / "custom_home"
    monkeypatch.setenv("BQ_ADAPTER_HOME", str(custom_home))
    assert get_adapter_home() == custom_home

def test_validate_requires_project_id(test_config):
    test_config.project_id = ""
    with pytest.raises(ConfigurationError, match="project_id"):
        test_config.validate()

@pytest.mark.parametrize("name", ["get_table_name", "get_id_key", "get_region"])
def test_validate_requires_resolvers(test_config, name):
    setattr(test_config, name, None)
    with pytest.raises(ConfigurationError, match=name):
        test_config.validate()

def test_validate_rejects_non_callable_wrapper(test_config):
    test_config.query_wrapper = "not callable"
    with pytest.raises(ConfigurationError, match="query_wrapper"):
        test_config.validate()

def test_validate_rejects_non_positive_timeout(test_config):
    test_config.job_timeout = 0
    with pytest.raises(ConfigurationError, match="job_timeout"):
        test_config.validate()

def test_table_name_from_template():
    resolve = table_name_from_template("Impact_{impact}.compiled")
    ctx = TenantContext(org="o", impact="9e32ebd8-5d74")
    assert resolve(ctx) == "Impact_9e32ebd8_5d74.compiled"

def test_table_name_template_with_override():
    resolve = table_name_from_template("{org}.{table}")
    assert resolve(TenantContext(org="acme", table_name="events")) == "acme.events"

def test_from_dict_static_resolvers():
    cfg = AdapterConfig.from_dict({
        "project_id": "p",
        "id_key": "Contacto__c",
        "region": "EU",
        "table_template": "Impact_{impact}.compiled",
        "query_blacklist": ["secret"],
        "show_logs": True,
    })
    cfg.validate()
    ctx = TenantContext(impact="a-b")
    assert cfg.get_table_name(ctx) == "Impact_a_b.compiled"
    assert cfg.get_id_key(ctx) == "Contacto__c"
    assert cfg.get_region(ctx) == "EU"
    assert cfg.query_blacklist == ["secret"]
    assert cfg.show_logs is True
    assert cfg.default_location == "US"

def test_from_dict_project_from_env(monkeypatch):
    monkeypatch.setenv("GCP_PROJECT", "env-project")
    cfg = AdapterConfig.from_dict({"id_key": "pk", "table_template": "t"})
    assert cfg.project_id == "env-project"

def test_load_config_missing_file(monkeypatch, tmp_path):
    monkeypatch.setenv("BQ_ADAPTER_HOME", str(tmp_path))
    with pytest.raises(ConfigurationError, match="config.yaml not found"):
        load_config()

def test_load_config_empty_file(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("")
    with pytest.raises(ConfigurationError, match="empty"):
        load_config(config_path)

def test_load_config_invalid_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("project_id: [unclosed")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_config(config_path)

def test_load_config_incomplete(tmp_path, monkeypatch):
    monkeypatch.delenv("GCP_PROJECT", raising=False)
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({"id_key": "pk"}))
    with pytest.raises(ConfigurationError):
        load_config(config_path)

def test_load_config_valid(monkeypatch, tmp_path):
    monkeypatch.setenv("BQ_ADAPTER_HOME", str(tmp_path))
    config_path = tmp_path / "config.yaml"

    config_data = {
        "project_id": "proof-of-impact",
        "id_key": "Contacto__c",
        "region": "US",
        "table_template": "Impact_{impact}.compiled",
        "job_timeout": 60,
    }
    config_path.write_text(yaml.dump(config_data))

    cfg = load_config()
    assert isinstance(cfg, AdapterConfig)
    assert cfg.project_id == "proof-of-impact"
    assert cfg.job_timeout == 60
    assert cfg.get_table_name(TenantContext(impact="x-y")) == "Impact_x_y.compiled"

def test_load_config_with_env_file(monkeypatch, tmp_path):
    monkeypatch.setenv("BQ_ADAPTER_HOME", str(tmp_path))
    config_path = tmp_path / "config.yaml"
    env_file = tmp_path / ".env.test"

    env_file.write_text("TEST_VAR=loaded_from_env")

    config_data = {
        "project_id": "test",
        "id_key": "pk",
        "table_template": "t",
        "env_file": str(env_file),
    }
    config_path.write_text(yaml.dump(config_data))

    # Pre-clean env var
    monkeypatch.delenv("TEST_VAR", raising=False)

    load_config()
    assert os.environ.get("TEST_VAR") == "loaded_from_env"
    monkeypatch.delenv("TEST_VAR", raising=False)
