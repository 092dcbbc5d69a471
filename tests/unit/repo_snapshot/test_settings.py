from pathlib import Path

import pytest

from repo_snapshot.config import DEFAULT_CONTEXT_LINES, DEFAULT_CONTEXT_WINDOWS, DEFAULT_ENCODING
from repo_snapshot.exceptions import ConfigError
from repo_snapshot.settings import DEFAULT_CONFIG_NAME, Settings, env_values, load_settings, read_config_file


def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.repo.resolve() == Path.cwd().resolve()
    assert settings.output is None
    assert settings.context_lines == DEFAULT_CONTEXT_LINES
    assert settings.context_windows == list(DEFAULT_CONTEXT_WINDOWS)
    assert settings.encoding == DEFAULT_ENCODING
    assert settings.is_diff is False


@pytest.mark.unit
def test_settings_split_comma_separated_lists() -> None:
    settings = Settings(extensions=[".RS,toml", "md"], excludes="target, dist", context_windows="4096,8192")

    assert settings.extensions == ["rs", "toml", "md"]
    assert settings.excludes == ["target", "dist"]
    assert settings.context_windows == [4096, 8192]


@pytest.mark.unit
def test_settings_git_from_selects_diff_mode() -> None:
    assert Settings(git_from="v1.0").is_diff
    assert not Settings(git_to="v1.0").is_diff


@pytest.mark.unit
def test_env_values_reads_prefixed_known_fields_only() -> None:
    values = env_values({"REPO_SNAPSHOT_PATTERN": "TODO", "REPO_SNAPSHOT_UNKNOWN": "x", "PATTERN": "no"})

    assert values == {"pattern": "TODO"}


@pytest.mark.unit
def test_load_settings_layers_env_config_and_overrides(tmp_path: Path) -> None:
    (tmp_path / DEFAULT_CONFIG_NAME).write_text(
        "context-lines: 5\nexcludes: [target, dist]\npattern: FIXME\n",
        encoding="utf-8",
    )
    environ = {"REPO_SNAPSHOT_PATTERN": "TODO", "REPO_SNAPSHOT_ENCODING": "cl100k_base"}

    settings = load_settings({"repo": tmp_path, "context_lines": 2}, environ=environ)

    assert settings.context_lines == 2  # noqa: PLR2004
    assert settings.excludes == ["target", "dist"]
    assert settings.pattern == "FIXME"
    assert settings.encoding == "cl100k_base"
    assert settings.config == tmp_path / DEFAULT_CONFIG_NAME


@pytest.mark.unit
def test_load_settings_reads_explicit_config_file(tmp_path: Path) -> None:
    config = tmp_path / "snapshot.yaml"
    config.write_text("extensions: rs\ncontext_windows: [4096]\n", encoding="utf-8")

    settings = load_settings({"repo": tmp_path, "config": config}, environ={})

    assert settings.extensions == ["rs"]
    assert settings.context_windows == [4096]


@pytest.mark.unit
def test_load_settings_converts_env_strings(tmp_path: Path) -> None:
    environ = {"REPO_SNAPSHOT_CONTEXT_LINES": "1", "REPO_SNAPSHOT_STRIP_COMMENTS": "true"}

    settings = load_settings({"repo": tmp_path}, environ=environ)

    assert settings.context_lines == 1
    assert settings.strip_comments is True


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"context_lines": -1},
        {"context_windows": [0]},
        {"unknown_option": True},
    ],
)
def test_load_settings_rejects_invalid_values(tmp_path: Path, overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        load_settings({"repo": tmp_path, **overrides}, environ={})


def test_read_config_file_requires_a_mapping(tmp_path: Path) -> None:
    config = tmp_path / "list.yaml"
    config.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError) as exc_info:
        read_config_file(config)

    assert "mapping" in str(exc_info.value)


def test_read_config_file_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        read_config_file(tmp_path / "missing.yaml")


def test_read_config_file_accepts_empty_file(tmp_path: Path) -> None:
    config = tmp_path / "empty.yaml"
    config.write_text("", encoding="utf-8")

    assert read_config_file(config) == {}
