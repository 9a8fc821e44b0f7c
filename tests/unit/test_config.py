"""Unit tests for settings construction."""
import os
import subprocess
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from vaultsearch.config import ApiKind, SearchSettings

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_defaults():
    settings = SearchSettings()

    assert settings.input_file_path == "input.csv"
    assert settings.embedding_file_path == "embedding.csv"
    assert 1 <= settings.num_batches <= 100


@pytest.mark.parametrize(
    "value,expected",
    [
        ("templates\narchive/", ["templates", "archive"]),
        ("templates, daily ,", ["templates", "daily"]),
        ("", []),
        (["a", "b"], ["a", "b"]),
    ],
)
def test_ignored_folders_parsing(value, expected):
    assert SearchSettings(ignored_folders=value).ignored_folders == expected


def test_api_type_is_case_insensitive():
    assert SearchSettings(api_type="OpenAI").api_type is ApiKind.OPENAI


@pytest.mark.parametrize("num_batches", [0, 101])
def test_num_batches_bounds(num_batches):
    with pytest.raises(ValidationError):
        SearchSettings(num_batches=num_batches)


def test_unknown_api_type():
    with pytest.raises(ValidationError):
        SearchSettings(api_type="cohere")


def test_from_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "vault_dir: /notes\n"
        "api_type: openai\n"
        "num_batches: 4\n"
        "section_delimiter_regex: '^## '\n"
        "ignored_folders:\n"
        "  - templates\n"
        "  - archive\n",
        encoding="utf-8",
    )

    settings = SearchSettings.from_yaml(path, num_batches=8)

    assert str(settings.vault_dir) == "/notes"
    assert settings.api_type is ApiKind.OPENAI
    assert settings.num_batches == 8
    assert settings.section_delimiter_regex == "^## "
    assert settings.ignored_folders == ["templates", "archive"]


def test_from_yaml_empty_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("", encoding="utf-8")

    assert SearchSettings.from_yaml(path).input_file_path == "input.csv"


def test_from_yaml_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        SearchSettings.from_yaml(tmp_path / "missing.yaml")


def test_from_yaml_not_a_mapping(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        SearchSettings.from_yaml(path)


def test_api_type_default_is_an_enum():
    assert isinstance(SearchSettings().api_type, ApiKind)


def test_bad_api_type_in_environment_is_reported_by_cli(tmp_path):
    env = {**os.environ, "EMBEDDING_API_TYPE": "cohere"}
    completed = subprocess.run(
        [sys.executable, "-m", "vaultsearch.cli", "--vault", str(tmp_path), "query", "raft"],
        cwd=REPO_ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert completed.returncode == 1
    assert "api_type" in completed.stdout
    assert "Traceback" not in completed.stderr
