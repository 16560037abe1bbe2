"""Tests for YAML configuration loading and validation."""

import pytest
import yaml

from provider_sync.config import Config, ConfigValidationError
from provider_sync.utils.errors import ConfigurationError


def write_config(tmp_path, data):
    path = tmp_path / "provider-sync.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestLoad:
    def test_load_file(self, tmp_path, config_dict):
        config = Config(write_config(tmp_path, config_dict)).load()

        assert config.store.lock_timeout == 1
        assert config.retry.max_retries == 0
        assert config.sync.max_parallel_providers == 2
        assert [p.name for p in config.providers] == ["aws-east", "aws-west", "legacy"]

    def test_defaults(self):
        config = Config().load_dict({"providers": [{"id": 1, "name": "aws-east"}]})

        assert config.store.path == ".provider-sync/inventory.json"
        assert config.retry.max_retries == 3
        assert config.providers[0].type == "ec2"
        assert config.providers[0].name_tag == "Name"
        assert config.providers[0].is_active()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config(str(tmp_path / "missing.yaml")).load()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "provider-sync.yaml"
        path.write_text("providers: [unclosed")

        with pytest.raises(ConfigValidationError, match="Failed to parse YAML"):
            Config(str(path)).load()

    def test_to_dict(self, config_dict):
        data = Config().load_dict(config_dict).to_dict()
        assert data["providers"][2]["status"] == "inactive"
        assert data["sync"]["max_parallel_providers"] == 2


class TestValidation:
    def test_providers_required(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            Config().load_dict({"store": {"path": "x.json"}})

        assert exc_info.value.errors[0]["loc"] == ["providers"]

    def test_empty_providers(self):
        with pytest.raises(ConfigValidationError):
            Config().load_dict({"providers": []})

    def test_duplicate_ids(self):
        with pytest.raises(ConfigValidationError, match="Duplicate provider id"):
            Config().load_dict({"providers": [{"id": 1, "name": "a"}, {"id": 1, "name": "b"}]})

    def test_duplicate_names(self):
        with pytest.raises(ConfigValidationError, match="Duplicate provider name"):
            Config().load_dict({"providers": [{"id": 1, "name": "a"}, {"id": 2, "name": "a"}]})

    def test_unsupported_type(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            Config().load_dict({"providers": [{"id": 1, "name": "a", "type": "libvirt"}]})

        assert exc_info.value.errors[0]["loc"] == ["providers", 0, "type"]

    def test_bad_retry_delays(self):
        with pytest.raises(ConfigValidationError):
            Config().load_dict({
                "retry": {"base_delay": 5, "max_delay": 1},
                "providers": [{"id": 1, "name": "a"}],
            })

    def test_errors_are_aggregated(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            Config().load_dict({
                "store": {"lock_timeout": -1},
                "providers": [{"id": 0, "name": "bad name!"}],
            })

        assert len(exc_info.value.errors) >= 3
        assert "store -> lock_timeout" in str(exc_info.value)

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigValidationError, match="must be a mapping"):
            Config().load_dict({"sync": 4, "providers": [{"id": 1, "name": "a"}]})


class TestProviderLookup:
    def test_by_id_and_name(self, config_dict):
        config = Config().load_dict(config_dict)

        assert config.get_provider(2).name == "aws-west"
        assert config.get_provider("2").name == "aws-west"
        assert config.get_provider("aws-east").id == 1

    def test_name_wins_over_id(self):
        config = Config().load_dict({"providers": [{"id": 1, "name": "2"}, {"id": 2, "name": "west"}]})

        assert config.get_provider("2").id == 1
        assert config.get_provider(2).name == "west"
        assert config.get_provider("1").name == "2"

    def test_unknown_provider(self, config_dict):
        config = Config().load_dict(config_dict)

        with pytest.raises(ConfigurationError, match="Available providers"):
            config.get_provider("nope")

    def test_active_providers(self, config_dict):
        config = Config().load_dict(config_dict)
        assert [p.name for p in config.active_providers()] == ["aws-east", "aws-west"]
