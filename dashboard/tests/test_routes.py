from errors import LaunchError
from server_process import LogLine


class TestAuth:
    def test_health_needs_no_token(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["server_running"] is False

    def test_missing_token(self, client):
        resp = client.get("/api/settings")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "MISSING_TOKEN"

    def test_bad_format(self, client):
        resp = client.get("/api/settings", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_FORMAT"

    def test_wrong_token(self, client):
        resp = client.get("/api/settings", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_TOKEN"

    def test_verify(self, client, auth_headers):
        resp = client.post("/api/auth/verify", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["valid"] is True

    def test_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"


class TestSettingsEndpoints:
    def test_get(self, client, auth_headers):
        resp = client.get("/api/settings", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["settings"]["port"] == 8080
        assert data["settings"]["split_mode"] == "layer"

    def test_update(self, client, auth_headers, session):
        resp = client.put(
            "/api/settings",
            json={"model_path": "/m.gguf", "cache_type_k": "q8_0"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["settings"]["cache_type_k"] == "q8_0"
        assert session.settings.model_path == "/m.gguf"

    def test_update_invalid_changes_nothing(self, client, auth_headers, session):
        resp = client.put(
            "/api/settings",
            json={"model_path": "/m.gguf", "port": "high", "bogus": 1},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "VALIDATION_FAILED"
        assert len(error["details"]) == 2
        assert session.settings.model_path == ""

    def test_update_missing_body(self, client, auth_headers):
        resp = client.put(
            "/api/settings", content_type="application/json", headers=auth_headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_REQUEST"

    def test_reset(self, client, auth_headers, session):
        session.update_settings({"port": 9999})
        resp = client.post("/api/settings/reset", headers=auth_headers)
        assert resp.status_code == 200
        assert session.settings.port == 8080

    def test_preview(self, client, auth_headers, session):
        session.update_settings({"model_path": "/m.gguf", "flash_attn": False})
        resp = client.get("/api/settings/preview", headers=auth_headers)
        data = resp.get_json()
        assert data["executable"] == "llama-server"
        assert data["args"][:2] == ["-m", "/m.gguf"]
        assert "-fa off" in data["command"]


class TestLoraEndpoints:
    def test_add_and_list(self, client, auth_headers):
        resp = client.post(
            "/api/settings/lora", json={"path": "/a.gguf", "scale": 0.5}, headers=auth_headers
        )
        assert resp.status_code == 201
        assert resp.get_json()["index"] == 0

        resp = client.get("/api/settings/lora", headers=auth_headers)
        assert resp.get_json()["adapters"] == [{"path": "/a.gguf", "scale": 0.5}]

    def test_add_blank(self, client, auth_headers, session):
        resp = client.post("/api/settings/lora", headers=auth_headers)
        assert resp.status_code == 201
        assert session.settings.lora_adapters[0].path == ""

    def test_add_invalid(self, client, auth_headers):
        resp = client.post(
            "/api/settings/lora", json={"scale": "big"}, headers=auth_headers
        )
        assert resp.status_code == 400

    def test_update(self, client, auth_headers, session):
        session.add_lora_adapter("/a.gguf")
        resp = client.put(
            "/api/settings/lora/0", json={"scale": 0.25}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["adapter"] == {"path": "/a.gguf", "scale": 0.25}

    def test_update_missing(self, client, auth_headers):
        resp = client.put(
            "/api/settings/lora/3", json={"scale": 0.25}, headers=auth_headers
        )
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND"

    def test_delete(self, client, auth_headers, session):
        session.add_lora_adapter("/a.gguf")
        session.add_lora_adapter("/b.gguf")
        resp = client.delete("/api/settings/lora/0", headers=auth_headers)
        assert resp.status_code == 200
        assert [a.path for a in session.settings.lora_adapters] == ["/b.gguf"]

    def test_delete_missing(self, client, auth_headers):
        resp = client.delete("/api/settings/lora/0", headers=auth_headers)
        assert resp.status_code == 404


class TestSaveLoadEndpoints:
    def test_save_default_file(self, client, auth_headers, session):
        resp = client.post("/api/settings/save", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["path"] == session.settings_file
        assert session.settings_file_exists()

    def test_save_and_load_explicit_path(self, client, auth_headers, session, tmp_path):
        target = str(tmp_path / "profile.json")
        session.update_settings({"hf_repo": "org/model"})
        resp = client.post("/api/settings/save", json={"path": target}, headers=auth_headers)
        assert resp.status_code == 200

        session.reset_settings()
        resp = client.post("/api/settings/load", json={"path": target}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["settings"]["hf_repo"] == "org/model"

    def test_load_missing_file(self, client, auth_headers, tmp_path):
        resp = client.post(
            "/api/settings/load",
            json={"path": str(tmp_path / "missing.json")},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "SETTINGS_IO_ERROR"

    def test_load_malformed(self, client, auth_headers, session, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("[]")
        session.update_settings({"port": 9001})
        resp = client.post("/api/settings/load", json={"path": str(bad)}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "SETTINGS_DECODE_ERROR"
        assert session.settings.port == 9001

    def test_save_nan(self, client, auth_headers, session):
        session.settings.temp = float("nan")
        resp = client.post("/api/settings/save", headers=auth_headers)
        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == "SETTINGS_ENCODE_ERROR"

    def test_invalid_path(self, client, auth_headers):
        resp = client.post(
            "/api/settings/save", json={"path": "bad\nname.json"}, headers=auth_headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_PATH"

    def test_save_body_not_object(self, client, auth_headers, session):
        resp = client.post("/api/settings/save", json=[1, 2], headers=auth_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_REQUEST"
        assert not session.settings_file_exists()

    def test_load_body_not_object(self, client, auth_headers, session):
        session.update_settings({"port": 9002})
        resp = client.post("/api/settings/load", json="x.json", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_REQUEST"
        assert session.settings.port == 9002


class TestServerEndpoints:
    def test_status_idle(self, client, auth_headers):
        resp = client.get("/api/server/status", headers=auth_headers)
        data = resp.get_json()
        assert data["running"] is False
        assert data["pid"] is None

    def test_start_without_model(self, client, auth_headers, fake_process):
        resp = client.post("/api/server/start", headers=auth_headers)
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "VALIDATION_FAILED"
        assert error["message"].startswith("Please provide a model path")
        fake_process.launch.assert_not_called()

    def test_start(self, client, auth_headers, session):
        session.update_settings({"model_path": "/m.gguf"})
        resp = client.post("/api/server/start", headers=auth_headers)
        assert resp.status_code == 202
        data = resp.get_json()
        assert data["pid"] == 4242
        assert data["command"].startswith("llama-server -m /m.gguf")

        resp = client.get("/api/server/status", headers=auth_headers)
        assert resp.get_json()["running"] is True

    def test_start_twice(self, client, auth_headers, session):
        session.update_settings({"model_path": "/m.gguf"})
        client.post("/api/server/start", headers=auth_headers)
        resp = client.post("/api/server/start", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_RUNNING"

    def test_start_launch_failure(self, client, auth_headers, session, fake_process):
        fake_process.launch.side_effect = LaunchError("No such file or directory")
        session.update_settings({"model_path": "/m.gguf"})
        resp = client.post("/api/server/start", headers=auth_headers)
        assert resp.status_code == 500
        error = resp.get_json()["error"]
        assert error["code"] == "LAUNCH_FAILED"
        assert error["message"] == "Failed to start: No such file or directory"

    def test_stop(self, client, auth_headers, session):
        session.update_settings({"model_path": "/m.gguf"})
        client.post("/api/server/start", headers=auth_headers)
        resp = client.post("/api/server/stop", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stopped"] is True

    def test_stop_when_idle(self, client, auth_headers):
        resp = client.post("/api/server/stop", headers=auth_headers)
        assert resp.get_json()["stopped"] is False


class TestLogEndpoints:
    def test_logs_after(self, client, auth_headers, session, fake_process):
        fake_process.drain.return_value = [LogLine("stdout", str(i)) for i in range(3)]
        session.poll_once()
        first = session.logs()[0]["seq"]

        resp = client.get(f"/api/server/logs?after={first}", headers=auth_headers)
        data = resp.get_json()
        assert [line["text"] for line in data["lines"]] == ["1", "2"]
        assert data["last_seq"] == first + 2

    def test_logs_empty(self, client, auth_headers):
        resp = client.get("/api/server/logs?after=7", headers=auth_headers)
        data = resp.get_json()
        assert data["lines"] == []
        assert data["last_seq"] == 7

    def test_clear(self, client, auth_headers, session, fake_process):
        fake_process.drain.return_value = [LogLine("stdout", "x")]
        session.poll_once()
        resp = client.delete("/api/server/logs", headers=auth_headers)
        assert resp.status_code == 200
        assert session.logs() == []


class TestFlagMetadataEndpoint:
    def test_groups(self, client, auth_headers):
        resp = client.get("/api/flag-metadata", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["categories"][0] == "Model"
        assert data["model_source_fields"] == ["model_path", "hf_repo", "model_dir", "model_url"]
        assert [g["category"] for g in data["groups"]] == data["categories"]
