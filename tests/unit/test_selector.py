"""Tests for strategy ranking and the two selection policies."""

import pytest

from vault_yields.core.registry import AllocationPolicy
from vault_yields.services.strategy.selector import (
    base_asset,
    rank_strategies,
    select_by_coverage,
    select_primary,
)


class TestBaseAsset:

    @pytest.mark.parametrize("symbol,expected", [
        ("USDT0", "USDT"),
        ("USDC.E", "USDC"),
        ("usdc-usdt", "USDC"),
        ("DAI", "DAI"),
    ])
    def test_strips_decoration(self, symbol, expected):
        assert base_asset(symbol) == expected


class TestRankStrategies:

    def test_floor_sort_and_limit(self, make_strategy):
        strategies = [
            make_strategy(pool="low", apy_mean_30d=4.9),
            make_strategy(pool="mid", apy_mean_30d=7.0),
            make_strategy(pool="high", apy_mean_30d=12.0),
            make_strategy(pool="edge", apy_mean_30d=5.0),
        ]
        ranked = rank_strategies(strategies, min_mean_apy=5.0)
        assert [s.id for s in ranked] == ["high", "mid", "edge"]
        assert [s.id for s in rank_strategies(strategies, limit=1)] == ["high"]

    def test_ties_keep_input_order(self, make_strategy):
        strategies = [make_strategy(pool=p, apy_mean_30d=6.0) for p in ("x", "y", "z")]
        assert [s.id for s in rank_strategies(strategies)] == ["x", "y", "z"]

    def test_mean_apy_falls_back_to_base(self, make_strategy):
        strategy = make_strategy(apy_mean_30d=0.0, apy_base=6.5)
        assert strategy.apy_mean_30d == 6.5


class TestSelectPrimary:

    def test_preferred_then_backfill(self, make_strategy):
        """One preferred pool at 6% and one other at 20%: both selected, grouped."""
        preferred = make_strategy(pool="aave", project="aave-v3", apy_mean_30d=6.0)
        other = make_strategy(pool="other", project="morpho-blue", apy_mean_30d=20.0)

        selection = select_primary([other, preferred], preferred_count=10, other_count=0)

        assert selection.policy == AllocationPolicy.PRIMARY
        assert [s.id for s in selection.preferred] == ["aave"]
        assert [s.id for s in selection.backfill] == ["other"]

    def test_dedupes_protocol_asset_chain(self, make_strategy):
        strategies = [
            make_strategy(pool="a1", project="aave-v3", symbol="USDT", apy_mean_30d=9.0),
            make_strategy(pool="a2", project="aave-v3", symbol="USDT0", apy_mean_30d=8.0),
            make_strategy(pool="a3", project="aave-v3", symbol="USDC", apy_mean_30d=7.0),
            make_strategy(pool="a4", chain_key="arbitrum", project="aave-v3", symbol="USDT", apy_mean_30d=6.0),
        ]
        selection = select_primary(strategies)

        assert [s.id for s in selection.preferred] == ["a1", "a3", "a4"]
        keys = {(s.protocol, base_asset(s.asset), s.chain) for s in selection.preferred}
        assert len(keys) == len(selection.preferred)

    def test_preferred_cap(self, make_strategy):
        strategies = [
            make_strategy(pool=f"c{i}", project="curve-dex", symbol=sym, chain_key=chain, apy_mean_30d=10.0 - i * 0.1)
            for i, (sym, chain) in enumerate(
                [("USDC", "ethereum"), ("USDT", "ethereum"), ("DAI", "ethereum"), ("USDC", "base")]
            )
        ]
        selection = select_primary(strategies, preferred_count=2)
        assert len(selection.preferred) == 2
        assert selection.backfill == ()

    def test_backfill_one_per_protocol(self, make_strategy):
        strategies = [
            make_strategy(pool="m1", project="morpho-blue", apy_mean_30d=15.0),
            make_strategy(pool="m2", project="morpho-blue", symbol="USDC", apy_mean_30d=14.0),
            make_strategy(pool="s1", project="spark", apy_mean_30d=9.0),
        ]
        selection = select_primary(strategies, preferred_count=2, other_count=0)
        assert [s.id for s in selection.backfill] == ["m1", "s1"]

    def test_filled_preferred_slots_leave_no_backfill(self, make_strategy):
        strategies = [
            make_strategy(pool="aave", project="aave-v3", apy_mean_30d=6.0),
            make_strategy(pool="other", project="morpho-blue", apy_mean_30d=20.0),
        ]
        selection = select_primary(strategies, preferred_count=1, other_count=0)
        assert [s.id for s in selection.selected] == ["aave"]

    def test_below_floor_never_selected(self, make_strategy):
        strategies = [make_strategy(pool="aave", project="aave-v3", apy_mean_30d=4.0)]
        assert len(select_primary(strategies)) == 0

    def test_input_not_mutated(self, make_strategy):
        strategies = [
            make_strategy(pool="b", project="aave-v3", apy_mean_30d=6.0),
            make_strategy(pool="a", project="aave-v3", symbol="USDC", apy_mean_30d=9.0),
        ]
        before = list(strategies)
        select_primary(strategies)
        assert strategies == before


class TestSelectByCoverage:

    def test_stops_at_coverage_target(self, make_strategy):
        strategies = [
            make_strategy(pool="a", apy_mean_30d=50.0),
            make_strategy(pool="b", apy_mean_30d=30.0),
            make_strategy(pool="c", apy_mean_30d=15.0),
            make_strategy(pool="d", apy_mean_30d=5.0),
        ]
        selection = select_by_coverage(strategies, coverage_target=0.9)

        # 50 + 30 + 15 = 95 of 100 >= 90%
        assert [s.id for s in selection.selected] == ["a", "b", "c"]
        assert selection.policy == AllocationPolicy.COVERAGE
        assert selection.backfill == ()

    def test_max_count(self, make_strategy):
        strategies = [make_strategy(pool=f"p{i}", apy_mean_30d=6.0) for i in range(30)]
        assert len(select_by_coverage(strategies, coverage_target=1.0, max_count=20)) == 20

    def test_single_strategy(self, make_strategy):
        selection = select_by_coverage([make_strategy(pool="only", apy_mean_30d=8.0)])
        assert [s.id for s in selection.selected] == ["only"]

    def test_empty(self):
        assert len(select_by_coverage([])) == 0
