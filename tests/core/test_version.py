"""Tests for kubernetes version comparison."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

channels = st.sampled_from(["", "-alpha", "-beta", "-gke", "-eks"])
builds = st.one_of(st.just(""), st.integers(min_value=0, max_value=20).map(lambda b: f".{b}"))
versions = st.builds(
    lambda major, minor, patch, channel, build: f"v{major}.{minor}.{patch}{channel}{build if channel else ''}",
    st.integers(min_value=0, max_value=3),
    st.integers(min_value=0, max_value=20),
    st.integers(min_value=0, max_value=20),
    channels,
    builds,
)


class TestParse:
    def test_plain_version(self) -> None:
        from castengine.core.version import KubeVersion, Release, parse

        assert parse("v1.9.7") == KubeVersion(1, 9, 7, Release.GA, 0)

    def test_channel_and_build(self) -> None:
        from castengine.core.version import Release, parse

        parsed = parse("v1.10.0-beta.2")
        assert parsed is not None
        assert parsed.release == Release.BETA
        assert parsed.build == 2

    def test_provider_channels_are_ga(self) -> None:
        from castengine.core.version import Release, parse

        parsed = parse("v1.11.3-gke.18")
        assert parsed is not None
        assert parsed.release == Release.GA

    def test_invalid(self) -> None:
        from castengine.core.version import parse

        assert parse("1.9.7") is None
        assert parse("latest") is None


class TestCompare:
    """Three-way comparison and its helpers."""

    @pytest.mark.parametrize(
        ("v1", "v2", "expected"),
        [
            ("v1.9.7", "v1.9.7", 0),
            ("v1.9.7", "v1.10.0", -1),
            ("v1.10.0", "v1.9.7", 1),
            ("v1.10.0-alpha.1", "v1.10.0-beta.0", -1),
            ("v1.10.0-beta.3", "v1.10.0", -1),
            ("v1.10.0-beta.1", "v1.10.0-beta.2", -1),
            ("invalid", "v1.0.0", -1),
            ("v1.0.0", "invalid", 1),
        ],
    )
    def test_examples(self, v1: str, v2: str, expected: int) -> None:
        from castengine.core.version import compare

        assert compare(v1, v2) == expected

    def test_two_invalid_versions_compare_reversed(self) -> None:
        from castengine.core.version import compare

        assert compare("a", "b") == 1
        assert compare("b", "a") == -1

    @given(v1=versions, v2=versions)
    def test_exactly_one_ordering_holds(self, v1: str, v2: str) -> None:
        from castengine.core.version import eq, gt, lt

        assert [lt(v1, v2), eq(v1, v2), gt(v1, v2)].count(True) == 1

    @given(v1=versions, v2=versions)
    def test_gte_and_lte_are_complements(self, v1: str, v2: str) -> None:
        from castengine.core.version import gt, gte, lt, lte

        assert gte(v1, v2) == (not lt(v1, v2))
        assert lte(v1, v2) == (not gt(v1, v2))

    @given(v1=versions, v2=versions)
    def test_antisymmetric(self, v1: str, v2: str) -> None:
        from castengine.core.version import compare

        assert compare(v1, v2) == -compare(v2, v1)


class TestLabelValue:
    def test_valid_value_unchanged(self) -> None:
        from castengine.core.version import as_label_value

        assert as_label_value("v1.9.7") == "v1.9.7"

    def test_invalid_value_trimmed_to_version(self) -> None:
        from castengine.core.version import as_label_value

        assert as_label_value("v1.9.7+build/meta") == "v1.9.7"

    def test_garbage_becomes_invalid(self) -> None:
        from castengine.core.version import INVALID_VERSION, as_label_value

        assert as_label_value("not a version!") == INVALID_VERSION
