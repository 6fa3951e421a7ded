import pytest

from atet import config


def test_default_config_is_valid():
    config.validate_config()


def test_length_window_must_be_ordered(monkeypatch):
    monkeypatch.setattr(config, 'MIN_TRANSECT_LENGTH', 5000)
    with pytest.raises(ValueError, match='MIN_TRANSECT_LENGTH'):
        config.validate_config()


def test_scales_must_increase(monkeypatch):
    monkeypatch.setattr(config, 'AGGREGATION_SCALES', (30, 10000, 500))
    with pytest.raises(ValueError, match='AGGREGATION_SCALES'):
        config.validate_config()


def test_treatments_hold_raw_label_and_six_adjusted_groups():
    for treatment in config.TREATMENTS.values():
        values = treatment['values']
        assert treatment['raw_label'] in values
        assert len([v for v in values if v != treatment['raw_label']]) == 6


def test_vegetation_metrics_share_palettes():
    assert set(config.LEGEND_PALETTES) == set(config.VEGETATION_METRICS)
    assert set(config.AGGREGATION_LEVELS) == {'mountain', 'watershed', 'transect'}
