"""Tests for drivetrain configuration loading."""

import json
from types import SimpleNamespace

import pytest

from swerve_control import config
from swerve_control.config import DrivetrainConfig, load_drivetrain_config
from swerve_control.errors import ConstructionError

SETTINGS = {
    "module_translations": [[0.3, 0.3], [0.3, -0.3], [-0.3, -0.3], [-0.3, 0.3]],
    "max_module_speed": 4.0,
}


def write_settings(tmp_path, data):
    path = tmp_path / "drivetrain.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return path


def test_default_config_from_module():
    drivetrain_config = load_drivetrain_config()

    assert len(drivetrain_config.module_translations) == 4
    assert drivetrain_config.max_module_speed == config.MAX_MODULE_SPEED
    assert drivetrain_config.discretize_dt == config.DISCRETIZE_DT
    assert drivetrain_config.module_translations[0] == (config.WHEEL_BASE / 2.0, config.TRACK_WIDTH / 2.0)


def test_from_json(tmp_path):
    drivetrain_config = load_drivetrain_config(write_settings(tmp_path, SETTINGS))

    assert drivetrain_config.module_translations[1] == (0.3, -0.3)
    assert drivetrain_config.max_module_speed == 4.0
    # Optional keys fall back to module defaults
    assert drivetrain_config.vision_std_devs == list(config.VISION_STD_DEVS)


def test_from_json_optional_keys(tmp_path):
    data = dict(SETTINGS, discretize_dt=0.02, state_std_devs=[0.05, 0.05, 0.01])
    drivetrain_config = DrivetrainConfig.from_json(write_settings(tmp_path, data))

    assert drivetrain_config.discretize_dt == 0.02
    assert drivetrain_config.state_std_devs == [0.05, 0.05, 0.01]


@pytest.mark.parametrize("missing", ["module_translations", "max_module_speed"])
def test_missing_required_key(tmp_path, missing):
    data = {key: value for key, value in SETTINGS.items() if key != missing}
    with pytest.raises(ConstructionError, match="Failed to load config"):
        load_drivetrain_config(write_settings(tmp_path, data))


def test_invalid_json(tmp_path):
    with pytest.raises(ConstructionError):
        load_drivetrain_config(write_settings(tmp_path, "{not json"))


def test_missing_file(tmp_path):
    with pytest.raises(ConstructionError):
        load_drivetrain_config(tmp_path / "absent.json")


def test_non_object_settings(tmp_path):
    with pytest.raises(ConstructionError):
        load_drivetrain_config(write_settings(tmp_path, [1, 2, 3]))


def test_malformed_translation(tmp_path):
    data = dict(SETTINGS, module_translations=[[0.3], [0.3, -0.3], [-0.3, -0.3], [-0.3, 0.3]])
    with pytest.raises(ConstructionError):
        load_drivetrain_config(write_settings(tmp_path, data))


def test_wrong_module_count(tmp_path):
    data = dict(SETTINGS, module_translations=SETTINGS["module_translations"][:3])
    with pytest.raises(ConstructionError):
        load_drivetrain_config(write_settings(tmp_path, data))


def test_from_module_missing_attribute():
    with pytest.raises(ConstructionError, match="Failed to load config"):
        DrivetrainConfig.from_module(SimpleNamespace(MODULE_TRANSLATIONS=config.MODULE_TRANSLATIONS))


def test_validate_rejects_short_std_devs():
    with pytest.raises(ConstructionError):
        DrivetrainConfig(vision_std_devs=[0.9, 0.9]).validate()
