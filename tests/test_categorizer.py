"""Tests for app categorization and package helpers."""
import pytest

from lifesync.categorizer import (
    AppCategorizer,
    categorize,
    is_system_app,
    is_system_package,
    package_to_app_name,
)
from lifesync.models import AppCategory


class TestCategorize:

    def test_known_apps(self):
        assert categorize("Instagram") == AppCategory.NEGATIVE
        assert categorize("Duolingo") == AppCategory.POSITIVE
        assert categorize("Gmail") == AppCategory.NEUTRAL

    def test_known_app_beats_keyword(self):
        # "fitness" is a positive keyword but YouTube is a known negative app
        assert categorize("YouTube Fitness") == AppCategory.NEGATIVE

    def test_self_name_is_neutral(self):
        assert categorize("LifeSync Games") == AppCategory.NEUTRAL
        assert categorize("lifesync games beta") == AppCategory.NEUTRAL

    def test_keyword_prefix_match(self):
        assert categorize("Puzzles Deluxe") == AppCategory.NEGATIVE
        assert categorize("Morning Meditation Timer") == AppCategory.POSITIVE

    def test_keyword_needs_word_start(self):
        # "game" must not match inside "image"
        assert categorize("Image Editor") == AppCategory.NEUTRAL

    def test_single_letter_known_name_matches_exactly(self):
        assert categorize("X") == AppCategory.NEGATIVE
        assert categorize("Firefox") == AppCategory.NEUTRAL

    @pytest.mark.parametrize("value", [None, "", 123, "   "])
    def test_invalid_input_is_neutral(self, value):
        assert categorize(value) == AppCategory.NEUTRAL

    def test_unknown_app_is_neutral(self):
        assert categorize("Zorblax") == AppCategory.NEUTRAL

    def test_custom_lists(self):
        categorizer = AppCategorizer(
            known_apps={AppCategory.POSITIVE: ["Focus Garden"]},
            keywords={AppCategory.NEGATIVE: {"custom": ["doom"]}},
        )
        assert categorizer.categorize("Focus Garden Pro") == AppCategory.POSITIVE
        assert categorizer.categorize("Doomscroller") == AppCategory.NEGATIVE


class TestPackageHelpers:

    def test_package_map(self):
        assert package_to_app_name("com.instagram.android") == "Instagram"
        assert package_to_app_name("com.lifesync.games") == "LifeSync Games"

    def test_package_fallback(self):
        assert package_to_app_name("org.example.notes") == "Notes"
        assert package_to_app_name("com.acme.android") == "Acme"
        assert package_to_app_name(None) is None

    def test_system_packages(self):
        assert is_system_package("com.google.android.apps.nexuslauncher")
        assert is_system_package("com.android.settings")
        assert is_system_package(None)
        assert not is_system_package("com.duolingo")

    def test_system_app_names(self):
        assert is_system_app("System UI")
        assert is_system_app("ab")
        assert is_system_app(None)
        assert not is_system_app("Samsung Health")
        assert not is_system_app("Duolingo")
