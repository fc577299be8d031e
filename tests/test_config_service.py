"""Property-based tests for the configuration service."""

import json
import tempfile
from dataclasses import replace
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

from romnibus.models import CatalogConfig, GrammarProfile
from romnibus.services.config import ConfigurationService
from romnibus.services.errors import ConfigurationError

path_names = st.text(min_size=1, max_size=30, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd")))

valid_config_strategy = st.builds(
    CatalogConfig,
    database_path=st.builds(lambda x: Path.home() / "catalogs" / f"{x}.db", path_names),
    work_directory=st.builds(lambda x: Path.home() / "work" / x, path_names),
    source_url=st.builds(lambda x: f"https://example.com/{x}.zip", path_names),
    signature_directories=st.lists(path_names, min_size=1, max_size=4).map(tuple),
    profile=st.sampled_from(list(GrammarProfile)),
    log_level=st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    keep_sources=st.booleans(),
    request_timeout=st.floats(min_value=0.1, max_value=600.0, allow_nan=False, allow_infinity=False),
    max_retries=st.integers(min_value=0, max_value=10),
)


@given(valid_config_strategy)
def test_configuration_round_trip(config: CatalogConfig) -> None:
    """Saving a valid configuration and loading it back preserves every value."""
    with tempfile.TemporaryDirectory() as temp_dir:
        service = ConfigurationService(Path(temp_dir) / "config.json")

        service.save_config(config)
        loaded = service.load_config()

    assert loaded == config


def test_missing_file_gives_defaults() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        service = ConfigurationService(Path(temp_dir) / "absent.json")

        config = service.load_config()

    assert config == service.get_default_config()
    assert config.profile is GrammarProfile.FILENAME
    assert config.signature_directories == ("metadat/no-intro", "metadat/fbneo-split")
    assert config.source_url.startswith("https://github.com/libretro/libretro-database")


def test_partial_file_fills_in_defaults() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        path = Path(temp_dir) / "config.json"
        path.write_text(json.dumps({"profile": "NAME", "log_level": "debug"}))
        service = ConfigurationService(path)

        config = service.load_config()

    assert config.profile is GrammarProfile.NAME
    assert config.log_level == "DEBUG"
    assert config.max_retries == service.get_default_config().max_retries


@pytest.mark.parametrize(
    "content",
    [
        "{ not json",
        "[1, 2]",
        json.dumps({"profile": "by-title"}),
        json.dumps({"max_retries": "three"}),
        json.dumps({"source_url": "ftp://example.com/x.zip"}),
        json.dumps({"signature_directories": []}),
        json.dumps({"request_timeout": 0}),
    ],
)
def test_invalid_file_falls_back_to_defaults(content: str) -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        path = Path(temp_dir) / "config.json"
        path.write_text(content)
        service = ConfigurationService(path)

        config = service.load_config()

    assert config == service.get_default_config()


@pytest.mark.parametrize(
    ("changes", "message"),
    [
        ({"log_level": "LOUD"}, "log_level"),
        ({"max_retries": -1}, "max_retries"),
        ({"max_retries": 50}, "max_retries"),
        ({"request_timeout": 0.0}, "request_timeout"),
        ({"signature_directories": ()}, "signature_directories"),
        ({"signature_directories": ("ok", "/")}, "signature_directories"),
        ({"source_url": "file:///tmp/x.zip"}, "source_url"),
    ],
)
def test_validation_errors(changes: dict, message: str) -> None:
    service = ConfigurationService(Path("unused.json"))
    config = replace(service.get_default_config(), **changes)

    result = service.validate_config(config)

    assert not result.is_valid
    assert any(message in error for error in result.errors)


def test_save_rejects_invalid_config() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        path = Path(temp_dir) / "config.json"
        service = ConfigurationService(path)
        config = replace(service.get_default_config(), max_retries=-5)

        with pytest.raises(ConfigurationError):
            service.save_config(config)

        assert not path.exists()
