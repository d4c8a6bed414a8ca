# tests/unit/runtime/test_unit_network.py — v1
"""Tests for runtime/network.py — connection-aware quality selection."""

from __future__ import annotations

import pytest

from adaptimg.registry.locations import LocationRegistry
from adaptimg.runtime.capabilities import NetworkSample, StaticNetworkInfo
from adaptimg.runtime.network import NetworkQualitySelector, select_quality


@pytest.fixture
def hero():
    return LocationRegistry().get("hero-main")


@pytest.fixture
def plain():
    return LocationRegistry().get("service-detail")


class TestSelectQuality:
    @pytest.mark.parametrize(
        "effective_type,expected",
        [("slow-2g", 30), ("2g", 40), ("3g", 70), ("4g", 90)],
    )
    def test_table_lookup(self, hero, effective_type, expected):
        sample = NetworkSample(effective_type=effective_type)
        assert select_quality(hero, sample) == expected

    def test_save_data_uses_lowest(self, hero):
        sample = NetworkSample(effective_type="4g", save_data=True)
        assert select_quality(hero, sample) == 30

    def test_no_sample_uses_static(self, hero):
        assert select_quality(hero, None) == 90

    def test_unknown_type_uses_static(self, hero):
        assert select_quality(hero, NetworkSample()) == 90

    def test_no_table_uses_static(self, plain):
        sample = NetworkSample(effective_type="2g", save_data=True)
        assert select_quality(plain, sample) == plain.quality


class TestNetworkQualitySelector:
    def test_static_until_sample(self, hero):
        selector = NetworkQualitySelector(StaticNetworkInfo())
        assert selector.quality_for(hero) == 90

    def test_watch_reevaluates_on_change(self, hero):
        info = StaticNetworkInfo(NetworkSample(effective_type="4g"))
        selector = NetworkQualitySelector(info)
        selector.start()
        seen = []
        sub = selector.watch(hero, seen.append)
        info.update(NetworkSample(effective_type="2g"))
        info.update(NetworkSample(effective_type="3g"))
        sub.unsubscribe()
        info.update(NetworkSample(effective_type="slow-2g"))
        assert seen == [90, 40, 70]
        assert selector.sample.effective_type == "slow-2g"

    def test_stop_releases_listener(self, hero):
        info = StaticNetworkInfo()
        selector = NetworkQualitySelector(info)
        selector.start()
        selector.start()
        assert info.listener_count == 1
        selector.stop()
        assert info.listener_count == 0
