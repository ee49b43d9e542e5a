from pathlib import Path

import pytest

from diffpatch.config import env_overrides, load_apply_options, load_options_file, load_patch_options
from diffpatch.engine.models import ApplierStrategy, ApplyOptions
from diffpatch.errors import ConfigError, DiffErrorCode

ENV_VARS = [
    "DIFFPATCH_FUZZY",
    "DIFFPATCH_STRATEGY",
    "DIFFPATCH_IGNORE_WHITESPACE",
    "DIFFPATCH_IGNORE_CASE",
    "DIFFPATCH_CREATE_BACKUP",
    "DIFFPATCH_MATCH_DISTANCE",
    "DIFFPATCH_ATOMIC",
    "DIFFPATCH_CONTINUE_ON_ERROR",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "diffpatch.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestEnvironment:
    def test_nothing_set(self):
        assert env_overrides() == {}
        assert load_apply_options() == ApplyOptions()

    def test_values(self, monkeypatch):
        monkeypatch.setenv("DIFFPATCH_FUZZY", "80")
        monkeypatch.setenv("DIFFPATCH_STRATEGY", "APPROXIMATE")
        monkeypatch.setenv("DIFFPATCH_IGNORE_WHITESPACE", "yes")
        monkeypatch.setenv("DIFFPATCH_CREATE_BACKUP", "0")

        options = load_apply_options()

        assert options.fuzzy == 80
        assert options.strategy == ApplierStrategy.APPROXIMATE
        assert options.ignore_whitespace is True
        assert options.create_backup is False

    def test_non_integer_is_ignored(self, monkeypatch):
        monkeypatch.setenv("DIFFPATCH_FUZZY", "lots")

        assert load_apply_options().fuzzy == 0

    def test_match_distance_keeps_other_settings(self, monkeypatch):
        monkeypatch.setenv("DIFFPATCH_MATCH_DISTANCE", "50")

        options = load_apply_options()

        assert options.approximate.match_distance == 50
        assert options.approximate.patch_margin == 4

    def test_patch_only_variables(self, monkeypatch):
        monkeypatch.setenv("DIFFPATCH_ATOMIC", "false")
        monkeypatch.setenv("DIFFPATCH_CONTINUE_ON_ERROR", "true")

        assert load_apply_options() == ApplyOptions()
        patch_options = load_patch_options()
        assert patch_options.atomic is False
        assert patch_options.continue_on_error is True


class TestOptionsFile:
    def test_file_beats_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DIFFPATCH_FUZZY", "80")
        config = write_yaml(tmp_path, "fuzzy: 60\nignore_case: true\n")

        options = load_apply_options(config)

        assert options.fuzzy == 60
        assert options.ignore_case is True

    def test_nested_settings_are_merged(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DIFFPATCH_MATCH_DISTANCE", "50")
        config = write_yaml(tmp_path, "approximate:\n  patch_margin: 8\n")

        settings = load_apply_options(config).approximate

        assert settings.match_distance == 50
        assert settings.patch_margin == 8

    def test_patch_paths(self, tmp_path):
        config = write_yaml(tmp_path, "root: src\njournal_path: logs/patches.jsonl\natomic: false\n")

        options = load_patch_options(config)

        assert options.root == Path("src")
        assert options.journal_path == Path("logs/patches.jsonl")
        assert options.atomic is False

    def test_empty_file(self, tmp_path):
        assert load_options_file(write_yaml(tmp_path, "")) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read options file"):
            load_apply_options(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_apply_options(write_yaml(tmp_path, "fuzzy: [1, 2\n"))

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_apply_options(write_yaml(tmp_path, "- fuzzy\n"))

    def test_unknown_key(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid options"):
            load_apply_options(write_yaml(tmp_path, "fuzz: 10\n"))


class TestExplicitOverrides:
    def test_explicit_beats_file(self, tmp_path):
        config = write_yaml(tmp_path, "fuzzy: 60\ndry_run: true\n")

        options = load_apply_options(config, fuzzy=10, dry_run=None)

        assert options.fuzzy == 10
        assert options.dry_run is True

    def test_out_of_range(self):
        with pytest.raises(ConfigError) as exc_info:
            load_apply_options(fuzzy=150)

        assert exc_info.value.code == DiffErrorCode.VALIDATION_FAILED
