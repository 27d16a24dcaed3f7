import json

from mock_runtime import daemon


def test_status(runtime_client):
    r = runtime_client.get('/openai/status')
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_list_catalog(runtime_client):
    r = runtime_client.get('/foundry/list')
    assert r.status_code == 200
    aliases = {m["alias"] for m in r.json()}
    assert {"phi-4-mini", "phi-3.5-mini", "qwen2.5-0.5b"} <= aliases
    # camelCase on the wire
    assert "deviceType" in r.json()[0]


def test_load_and_unload(runtime_client):
    # Positive: the first catalog entry is downloaded by default
    r = runtime_client.get('/openai/load/phi-4-mini', params={"ttl": 30})
    assert r.status_code == 200
    assert r.json()["id"] == "Phi-4-mini-instruct-generic-cpu:1"
    r = runtime_client.get('/openai/loadedmodels')
    assert [m["alias"] for m in r.json()] == ["phi-4-mini"]
    r = runtime_client.get('/v1/models')
    assert r.json()["data"][0]["id"] == "Phi-4-mini-instruct-generic-cpu:1"
    # Unload by id works as well as by alias
    r = runtime_client.get('/openai/unload/Phi-4-mini-instruct-generic-cpu:1')
    assert r.status_code == 200
    assert runtime_client.get('/openai/loadedmodels').json() == []
    # Negative: unloading again
    r = runtime_client.get('/openai/unload/phi-4-mini')
    assert r.status_code == 404


def test_load_errors(runtime_client):
    # Negative: not downloaded
    r = runtime_client.get('/openai/load/phi-3.5-mini')
    assert r.status_code == 400
    assert "not been downloaded" in r.json()["detail"]
    # Negative: unknown model
    r = runtime_client.get('/openai/load/no-such-model')
    assert r.status_code == 404
    assert "not found" in r.json()["detail"]


def test_download_streams_progress(runtime_client):
    with runtime_client.stream("POST", '/openai/download', json={"model": "phi-3.5-mini"}) as r:
        assert r.status_code == 200
        lines = [json.loads(line) for line in r.iter_lines() if line]
    assert [m["progress"] for m in lines if "progress" in m] == [0.0, 50.0, 100.0]
    assert lines[-1]["success"] is True
    assert "phi-3.5-mini" in daemon.downloaded
    # Loading now succeeds
    assert runtime_client.get('/openai/load/phi-3.5-mini').status_code == 200


def test_download_validation(runtime_client):
    # Negative: missing model field
    r = runtime_client.post('/openai/download', json={})
    assert r.status_code == 422
    # Negative: unknown model
    r = runtime_client.post('/openai/download', json={"model": "ghost"})
    assert r.status_code == 404


def test_shutdown_without_server(runtime_client):
    r = runtime_client.post('/shutdown')
    assert r.status_code == 200
    assert r.json()["message"] == "Server shutting down"
