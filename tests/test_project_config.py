"""Tests for gridcalc.yaml loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gridcalc.project import CONFIG_FILENAME, DEFAULT_CONFIG, load_project_config


def _write_config(directory: Path, data) -> None:
    (directory / CONFIG_FILENAME).write_text(yaml.dump(data))


class TestLoadProjectConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_project_config(tmp_path) == DEFAULT_CONFIG

    def test_defaults_not_mutated(self, tmp_path: Path) -> None:
        _write_config(tmp_path, {"delimiter": ","})
        load_project_config(tmp_path)
        assert DEFAULT_CONFIG["delimiter"] == "|"

    def test_user_values_override(self, tmp_path: Path) -> None:
        _write_config(tmp_path, {"delimiter": ",", "deadline_seconds": 2.5, "float_precision": 4})
        cfg = load_project_config(tmp_path)
        assert cfg["delimiter"] == ","
        assert cfg["deadline_seconds"] == 2.5
        assert cfg["float_precision"] == 4
        assert cfg["render_separator"] == " | "

    def test_unknown_keys_kept(self, tmp_path: Path) -> None:
        _write_config(tmp_path, {"owner": "finance"})
        assert load_project_config(tmp_path)["owner"] == "finance"

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        assert load_project_config(tmp_path) == DEFAULT_CONFIG

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        _write_config(tmp_path, ["a", "b"])
        with pytest.raises(ValueError, match="mapping"):
            load_project_config(tmp_path)

    @pytest.mark.parametrize(
        "key,value",
        [
            ("delimiter", "ab"),
            ("delimiter", "\n"),
            ("deadline_seconds", -1),
            ("deadline_seconds", "soon"),
            ("float_precision", -2),
            ("float_precision", True),
            ("logging_tail_bytes", 0),
        ],
    )
    def test_invalid_values(self, tmp_path: Path, key: str, value) -> None:
        _write_config(tmp_path, {key: value})
        with pytest.raises(ValueError, match=key):
            load_project_config(tmp_path)
