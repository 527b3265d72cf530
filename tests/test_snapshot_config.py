"""Tests for snapshot files and engine settings."""

import pytest

from worktally.config import EngineSettings, load_settings
from worktally.models import TaskGraph, TaskNode
from worktally.recovery import ConfigError, CorruptionError, RecoverableError
from worktally.snapshot import atomic_write, load_graph, save_graph


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WORKTALLY_CONFIG", "WORKTALLY_CACHE_TTL", "WORKTALLY_INHERIT_SUBTASK_BLOCKING"):
        monkeypatch.delenv(name, raising=False)


class TestSnapshot:
    """Test loading and saving snapshots."""

    def test_save_and_load(self, tmp_path, project):
        path = tmp_path / "snap.yaml"
        assert save_graph(TaskGraph(tasks=project), path)
        loaded = load_graph(path)
        assert [t.id for t in loaded.tasks] == ["P", "C1", "C2", "D"]
        assert loaded.get("C1").direct_seconds == 5400

    def test_missing_file_is_empty(self, tmp_path):
        assert len(load_graph(tmp_path / "nothing.yaml")) == 0

    def test_create_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "snap.yaml"
        save_graph(TaskGraph(tasks=[TaskNode(id="a")]), path, create_dirs=True)
        assert load_graph(path).get("a") is not None

    def test_no_temp_files_left(self, tmp_path):
        atomic_write(tmp_path / "out.yaml", "tasks: []\n")
        assert [p.name for p in tmp_path.iterdir()] == ["out.yaml"]

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "snap.yaml"
        path.write_text("tasks: [unclosed\n")
        with pytest.raises(CorruptionError, match="YAML syntax error"):
            load_graph(path)

    def test_model_mismatch(self, tmp_path):
        path = tmp_path / "snap.yaml"
        path.write_text("tasks:\n  - id: a\n    direct_seconds: -5\n")
        with pytest.raises(CorruptionError, match="does not match the task model"):
            load_graph(path)

    def test_two_running_entries(self, tmp_path):
        path = tmp_path / "snap.yaml"
        path.write_text(
            "tasks:\n"
            "  - id: a\n"
            "    time_entries:\n"
            "      - start_time: '2025-10-20T09:00:00'\n"
            "      - start_time: '2025-10-20T09:05:00'\n"
        )
        with pytest.raises(CorruptionError, match="running time entries"):
            load_graph(path)


class TestSettings:
    """Test layered settings."""

    def test_defaults(self):
        settings = load_settings()
        assert settings == EngineSettings()
        assert settings.cache_ttl_seconds == 1.0
        assert not settings.inherit_subtask_blocking

    def test_file_values(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("cache_ttl_seconds: 5\ninherit_subtask_blocking: true\n")
        settings = load_settings(path)
        assert settings.cache_ttl_seconds == 5.0
        assert settings.inherit_subtask_blocking

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("cache_ttl_seconds: 5\n")
        monkeypatch.setenv("WORKTALLY_CONFIG", str(path))
        monkeypatch.setenv("WORKTALLY_CACHE_TTL", "0.25")
        monkeypatch.setenv("WORKTALLY_INHERIT_SUBTASK_BLOCKING", "yes")
        settings = load_settings()
        assert settings.cache_ttl_seconds == 0.25
        assert settings.inherit_subtask_blocking

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yaml")

    def test_missing_env_file_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WORKTALLY_CONFIG", str(tmp_path / "nope.yaml"))
        assert load_settings() == EngineSettings()

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("cache_ttl_seconds: 0\n")
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(path)

    def test_personnel_bounds(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("default_personnel_count: 5\nmax_personnel_count: 2\n")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_settings(path)

    def test_config_errors_are_recoverable(self):
        assert issubclass(ConfigError, RecoverableError)
