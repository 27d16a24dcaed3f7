import os

import pytest

from connectors.foundry_cli import FoundryCLI
from orchestrator.cache_manager import CacheManager, parse_cache_listing, parse_cache_location
from orchestrator.errors import OperationalError, ParseError, ValidationError

LISTING = """\
Models cached on device:
   Alias                                             Model ID
💾 phi-3.5-mini                                      Phi-3.5-mini-instruct-generic-cpu:1
💾 my-model_1                                        my-model_1
💾 broken
"""


@pytest.fixture
def cache(fake_run):
    fake_run.set("cache", "location", stdout="💾 Cache directory path: /data/default\n")
    return CacheManager(FoundryCLI(timeout=5))


def test_parse_location():
    assert parse_cache_location("Cache directory path: /data/models  \n") == "/data/models"
    with pytest.raises(ParseError):
        parse_cache_location("something else entirely")
    with pytest.raises(ParseError):
        parse_cache_location("")


def test_parse_listing_skips_header_and_malformed_rows():
    models = parse_cache_listing(LISTING)
    assert [(m.alias, m.id) for m in models] == [
        ("phi-3.5-mini", "Phi-3.5-mini-instruct-generic-cpu:1"),
        ("my-model_1", "my-model_1"),
    ]
    assert parse_cache_listing("") == []
    assert parse_cache_listing("garbage\n\n💾\n") == []


def test_default_captured_once(cache, fake_run):
    assert cache.get_default_path() is None
    assert cache.get_current_location() == "/data/default"
    fake_run.set("cache", "location", stdout="Cache directory path: /data/other")
    assert cache.get_current_location() == "/data/other"
    assert cache.get_default_path() == "/data/default"
    assert cache.get_location().is_default is False


def test_switch_and_restore_default(cache, fake_run, tmp_path):
    cache.get_current_location()
    target = os.path.realpath(str(tmp_path))
    fake_run.set("cache", "location", stdout=f"Cache directory path: {target}")
    result = cache.switch_cache(str(tmp_path))
    assert result.success is True
    assert result.location == target
    assert result.is_default is False
    assert ["foundry", "cache", "cd", target] in fake_run.calls

    fake_run.set("cache", "location", stdout="Cache directory path: /data/default")
    result = cache.switch_cache("default")
    assert result.is_default is True
    assert fake_run.calls[-2] == ["foundry", "cache", "cd", os.path.realpath("/data/default")]


def test_switch_default_before_capture(cache, fake_run):
    with pytest.raises(OperationalError, match="Default cache path is unknown"):
        cache.switch_cache("default")
    assert fake_run.calls == []


def test_switch_rejects_unsafe_path_without_spawning(cache, fake_run):
    with pytest.raises(ValidationError):
        cache.switch_cache("/etc")
    with pytest.raises(ValidationError):
        cache.switch_cache("/tmp/x\x00y")
    assert fake_run.calls == []


def test_switch_failure_is_wrapped(cache, fake_run, tmp_path):
    fake_run.set("cache", "cd", stderr="permission denied", returncode=1)
    with pytest.raises(OperationalError, match="Failed to switch cache: .*permission denied"):
        cache.switch_cache(str(tmp_path))


def test_list_cache_models(cache, fake_run):
    fake_run.set("cache", "ls", stdout=LISTING)
    assert [m.alias for m in cache.list_cache_models()] == ["phi-3.5-mini", "my-model_1"]


def test_list_cache_models_never_raises(cache, fake_run):
    fake_run.set("cache", "ls", stdout="Unexpected banner\nwith no rows")
    assert cache.list_cache_models() == []
    fake_run.set("cache", "ls", stderr="service down", returncode=1)
    assert cache.list_cache_models() == []


def test_load_cached_model_argv(cache, fake_run):
    fake_run.set("model", "load", stdout="Model my-model_1 loaded")
    assert cache.load_cached_model("my-model_1", 120) == "Model my-model_1 loaded"
    assert fake_run.calls == [["foundry", "model", "load", "my-model_1", "--ttl", "120"]]


def test_check_cli_available(cache, fake_run):
    assert cache.check_cli_available() is True
    fake_run.set("foundry", returncode=1)
    assert cache.check_cli_available() is False


def test_first_switch_keeps_original_as_default(cache, fake_run, tmp_path):
    target = os.path.realpath(str(tmp_path))
    fake_run.set_sequence("cache", "location", stdouts=[
        "Cache directory path: /data/default",
        f"Cache directory path: {target}",
    ])
    result = cache.switch_cache(str(tmp_path))
    assert result.location == target
    assert result.is_default is False
    assert cache.get_default_path() == "/data/default"
    assert [c[1:3] for c in fake_run.calls] == [["cache", "location"], ["cache", "cd"], ["cache", "location"]]
