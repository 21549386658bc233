import pytest
from pydantic import ValidationError

from arena.logic.settings import GameSettings


class TestGameSettingsDefaults:
    def test_floor_threshold_subtracts_body_height(self):
        settings = GameSettings()
        assert settings.floor_threshold == 476.0

    def test_ceiling_threshold_is_top_of_play_area(self):
        assert GameSettings().ceiling_threshold == 0.0

    def test_tick_interval_seconds(self):
        assert GameSettings(tick_interval_ms=20).tick_interval_seconds == pytest.approx(0.02)

    def test_default_countdown_ends_with_go(self):
        assert GameSettings().countdown_labels == ("3", "2", "1", "Go!")

    def test_settings_are_frozen(self):
        settings = GameSettings()
        with pytest.raises(ValidationError):
            settings.gravity = 1.0


class TestGameSettingsValidation:
    def test_gap_must_fit_inside_play_area(self):
        with pytest.raises(ValidationError, match="gap_size"):
            GameSettings(play_area_height=300, gap_size=250, min_margin=50, start_y=100)

    def test_start_y_must_be_above_floor(self):
        with pytest.raises(ValidationError, match="start_y"):
            GameSettings(start_y=480)

    def test_start_y_must_be_below_ceiling(self):
        with pytest.raises(ValidationError, match="start_y"):
            GameSettings(start_y=0)

    def test_min_players_cannot_exceed_max(self):
        with pytest.raises(ValidationError, match="min_players"):
            GameSettings(min_players=3, max_players=2)

    def test_empty_countdown_rejected(self):
        with pytest.raises(ValidationError, match="countdown_labels"):
            GameSettings(countdown_labels=())

    def test_jump_impulse_must_point_up(self):
        with pytest.raises(ValidationError):
            GameSettings(jump_impulse=5.0)

    def test_tick_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            GameSettings(tick_interval_ms=0)
