"""Tests for mapping rule value objects."""

import pytest

from leadsync.lib.mapping import MappingRule, Transform


class TestMappingRule:
    """Tests for MappingRule validation and construction."""

    def test_from_sources_drops_missing_fallbacks(self) -> None:
        rule = MappingRule.from_sources("scouter", "Scouter", None, "SCOUTER_NAME")
        assert rule.candidates == ("Scouter", "SCOUTER_NAME")
        assert rule.tagged_candidates() == [("primary", "Scouter"), ("secondary", "SCOUTER_NAME")]

    def test_transform_accepts_plain_string(self) -> None:
        rule = MappingRule("idade", ("Idade",), "numeric")
        assert rule.transform is Transform.NUMERIC

    def test_rejects_unknown_transform(self) -> None:
        with pytest.raises(ValueError):
            MappingRule("idade", ("Idade",), "uppercase")

    def test_rejects_more_than_three_candidates(self) -> None:
        with pytest.raises(ValueError, match="1-3 source candidates"):
            MappingRule("nome", ("a", "b", "c", "d"))

    def test_rejects_no_candidates(self) -> None:
        with pytest.raises(ValueError):
            MappingRule("nome", ())

    def test_rejects_blank_target(self) -> None:
        with pytest.raises(ValueError, match="target_field"):
            MappingRule(" ", ("Nome",))

    def test_is_immutable(self) -> None:
        rule = MappingRule("nome", ("Nome",))
        with pytest.raises(AttributeError):
            rule.target_field = "other"  # type: ignore[misc]
