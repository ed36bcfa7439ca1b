import os

import pytest

from local_planner.config import PlannerConfig, config_from_dict, load_config

PARAMS = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'config', 'params.yaml')


def test_defaults():
    config = PlannerConfig()
    assert config.lookahead_distance == 2.5
    assert config.inflation_radius == 3
    assert config.decay_threshold == 50
    assert config.horizon == 10
    assert config.map_frame == 'map'


def test_bundled_params_load():
    config = load_config(PARAMS)
    assert config.lookahead_distance == 2.5
    assert config.bubble_radius == 0.4
    assert config.gap_size_threshold == 30
    assert config.state_weights == [10.0, 10.0, 1.0]
    assert config.track_files == ['data/pp.csv']
    assert config.ego_laser == 'ego_racecar/laser'


def test_load_yaml_overrides(tmp_path):
    path = tmp_path / 'params.yaml'
    path.write_text("lookahead_distance: 1.5\nhorizon: 20\nmax_velocity: 5\nsolve_time_budget: null\n")
    config = load_config(str(path))

    assert config.lookahead_distance == 1.5
    assert config.horizon == 20
    assert config.max_velocity == 5
    assert config.solve_time_budget is None
    assert config.bubble_radius == 0.4


def test_unknown_keys_are_ignored(caplog):
    config = config_from_dict({'lookahead_distance': 3.0, 'no_such_parameter': 1})
    assert config.lookahead_distance == 3.0
    assert not hasattr(config, 'no_such_parameter')
    assert 'no_such_parameter' in caplog.text


@pytest.mark.parametrize('values', [
    {'lookahead_distance': 'far'},
    {'horizon': 10.5},
    {'inflation_radius': True},
    {'state_weights': 10.0},
    {'map_frame': 3},
])
def test_wrong_types_are_rejected(values):
    with pytest.raises(ValueError):
        config_from_dict(values)


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / 'params.yaml'
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / 'params.yaml'
    path.write_text("")
    assert load_config(str(path)) == PlannerConfig()


def test_to_dict_round_trip():
    config = PlannerConfig(lookahead_distance=1.0)
    assert config_from_dict(config.to_dict()) == config
