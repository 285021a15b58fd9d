"""
Tests for the closed-loop opportunity detector.

The two-pool scenario prices WETH at 3000 USDC on one venue and 3200 USDC on
another; a $50 loop through both clears roughly $2.75 after a 0.09% flash loan
fee and $0.30 of gas, whichever token it starts from.
"""

import json

import pytest

from loop_arbitrage.config_schema import DetectorConfig
from loop_arbitrage.dex.detector import OpportunityDetector
from loop_arbitrage.dex.route_selector import PoolIndex
from loop_arbitrage.dex.snapshot import DecimalMap
from loop_arbitrage.dex.types import LoopKind, Pool
from loop_arbitrage.exceptions import ConfigurationError

WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"

A = "0xaaa"
B = "0xbbb"
C = "0xccc"

NOW = 1_760_745_600.0


@pytest.fixture
def pool_p():
    """100 WETH / 300k USDC at 0.30%: WETH at 3000."""
    return Pool(
        chain_id=8453,
        token_a=WETH,
        token_b=USDC,
        reserve_a=100 * 10**18,
        reserve_b=300_000 * 10**6,
        fee_bps=30,
    )


@pytest.fixture
def pool_q():
    """50 WETH / 160k USDC at 0.10%: WETH at 3200."""
    return Pool(
        chain_id=8453,
        token_a=USDC,
        token_b=WETH,
        reserve_a=160_000 * 10**6,
        reserve_b=50 * 10**18,
        fee_bps=10,
    )


@pytest.fixture
def decimals():
    return {WETH: 18, USDC: 6}


@pytest.fixture
def prices():
    return {WETH: 3000.0, USDC: 1.0}


@pytest.fixture
def triangle_pools():
    """A -> B -> C -> A returns 1.2x before fees; the reverse direction loses."""
    return [
        Pool(chain_id=1, token_a=A, token_b=B, reserve_a=10**24, reserve_b=10**24),
        Pool(chain_id=1, token_a=B, token_b=C, reserve_a=10**24, reserve_b=10**24),
        Pool(chain_id=1, token_a=C, token_b=A, reserve_a=10**24, reserve_b=12 * 10**23),
    ]


@pytest.fixture
def detector():
    return OpportunityDetector(DetectorConfig())


def test_two_pool_loop_is_profitable(detector, pool_p, pool_q, decimals, prices):
    opps = detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)

    assert len(opps) == 2
    assert {o.token_in for o in opps} == {WETH, USDC}
    for opp in opps:
        assert opp.kind == LoopKind.DIRECT
        assert opp.token_in == opp.token_out
        assert 2.5 < opp.profit_usd < 3.0
        assert 6.0 < opp.profit_percentage < 6.4
        assert opp.net_profit < opp.gross_profit
        assert opp.confidence == 1.0
        assert not opp.decimals_defaulted


def test_loop_sells_on_the_expensive_venue(detector, pool_p, pool_q, decimals, prices):
    opps = detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)
    by_start = {o.token_in: o for o in opps}

    # WETH is sold where it is dear and bought back where it is cheap
    assert by_start[WETH].pool_ids == (pool_q.pool_id, pool_p.pool_id)
    assert by_start[USDC].pool_ids == (pool_p.pool_id, pool_q.pool_id)
    assert by_start[WETH].path == (WETH, USDC, WETH)


def test_trade_size_follows_decimals(detector, pool_p, pool_q, decimals, prices):
    opps = detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)
    by_start = {o.token_in: o for o in opps}

    assert by_start[USDC].amount_in == 50 * 10**6
    assert by_start[WETH].amount_in == 16666666666666666


def test_high_usd_threshold_suppresses(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(DetectorConfig(min_profit_usd=3.0))
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


def test_high_percentage_threshold_suppresses(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(DetectorConfig(min_profit_percentage=7.0))
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


def test_output_sorted_by_profit(detector, pool_p, pool_q, decimals, prices, triangle_pools):
    pools = [pool_p, pool_q] + triangle_pools
    opps = detector.scan([WETH, USDC, A, B, C], pools, decimals, prices, now=NOW)

    assert len(opps) == 5
    profits = [o.profit_usd for o in opps]
    assert profits == sorted(profits, reverse=True)
    assert len({o.loop_id for o in opps}) == len(opps)


def test_empty_snapshot(detector):
    assert detector.scan([WETH, USDC], [], {}) == []
    assert detector.last_stats.opportunities == 0


def test_single_pool_pair_has_no_direct_loop(detector, pool_p, decimals, prices):
    assert detector.scan([WETH, USDC], [pool_p], decimals, prices) == []
    assert detector.find_direct_arbitrage(WETH, USDC, [pool_p], decimals, prices) is None


def test_universe_limits_search(detector, pool_p, pool_q, decimals, prices):
    assert detector.scan([WETH], [pool_p, pool_q], decimals, prices) == []


def test_find_direct_returns_first_qualifying(detector, pool_p, pool_q, decimals, prices):
    opp = detector.find_direct_arbitrage(
        WETH.upper().replace("0X", "0x"), USDC, [pool_p, pool_q], decimals, prices, now=NOW
    )
    assert opp is not None
    assert opp.pool_ids == (pool_q.pool_id, pool_p.pool_id)
    assert detector.last_stats.candidates_evaluated == 1


def test_scan_stats(detector, pool_p, pool_q, decimals, prices):
    detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)
    stats = detector.last_stats

    assert stats.pairs_checked == 2
    # WETH qualifies on its first ordering, USDC on its second
    assert stats.candidates_evaluated == 3
    assert stats.opportunities == 2
    assert stats.to_dict()["decimals_defaulted"] == []


def test_triangular_loops(detector, triangle_pools):
    opps = detector.scan([A, B, C], triangle_pools, {}, {A: 1.0, B: 1.0, C: 1.0}, now=NOW)

    assert len(opps) == 3
    assert {o.token_in for o in opps} == {A, B, C}
    for opp in opps:
        assert opp.kind == LoopKind.TRIANGULAR
        assert len(opp.pool_ids) == 3
        assert len(opp.amounts) == 4
        assert opp.path[0] == opp.path[-1] == opp.token_in
        assert opp.profit_percentage > 15
        assert opp.confidence == 1.0
        assert opp.decimals_defaulted

    by_start = {o.token_in: o for o in opps}
    assert by_start[A].path == (A, B, C, A)
    assert detector.last_stats.triples_checked == 6


def test_missing_triangular_leg(detector, triangle_pools):
    incomplete = triangle_pools[:2]
    assert detector.scan([A, B, C], incomplete, {}) == []
    assert detector.find_triangular_arbitrage(A, B, C, incomplete) is None


def test_triangular_leg_skips_pool_over_impact_ceiling(triangle_pools):
    """A shallow A/B pool quotes more B but moves its price a third; the deep one carries the loop."""
    shallow = Pool(chain_id=1, token_a=A, token_b=B, reserve_a=100 * 10**18, reserve_b=10**22)
    deep = Pool(chain_id=1, token_a=A, token_b=B, reserve_a=10**24, reserve_b=10**24, fee_bps=5)
    pools = [shallow, deep] + triangle_pools[1:]
    prices = {A: 1.0, B: 1.0, C: 1.0}
    detector = OpportunityDetector(DetectorConfig(max_price_impact_pct=30.0))

    without_shallow = detector.find_triangular_arbitrage(A, B, C, pools[1:], {}, prices, now=NOW)
    opp = detector.find_triangular_arbitrage(A, B, C, pools, {}, prices, now=NOW)

    assert opp is not None
    assert opp.pool_ids[0] == deep.pool_id
    assert opp == without_shallow
    assert opp.profit_usd > 9


def test_triangular_needs_three_distinct_tokens(detector, triangle_pools):
    assert detector.find_triangular_arbitrage(A, B, A, triangle_pools) is None


def test_max_hops_two_disables_triangular(triangle_pools):
    detector = OpportunityDetector(DetectorConfig(max_hops=2))
    assert detector.scan([A, B, C], triangle_pools, {}) == []
    assert detector.last_stats.triples_checked == 0


def test_max_hops_one_disables_search(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(DetectorConfig(max_hops=1))
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []
    assert detector.last_stats.pairs_checked == 0


def test_direct_search_can_be_disabled(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(DetectorConfig(enable_direct=False))
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


def test_price_impact_ceiling(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(DetectorConfig(max_price_impact_pct=0.01))
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


def test_min_reserve_floor(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(DetectorConfig(min_reserve=10**12))
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


def test_missing_decimals_are_flagged(detector, pool_p, pool_q, prices):
    """USDC sized as an 18-decimal token swamps both pools and is rejected."""
    opps = detector.scan([WETH, USDC], [pool_p, pool_q], {WETH: 18}, prices, now=NOW)

    assert [o.token_in for o in opps] == [WETH]
    assert detector.last_stats.decimals_defaulted == {USDC}


def test_missing_prices_default_to_one_dollar(detector, pool_p, pool_q, decimals):
    opps = detector.scan([WETH, USDC], [pool_p, pool_q], decimals, None, now=NOW)

    # $50 of WETH at $1 is 50 WETH, which no longer loops at a profit
    assert [o.token_in for o in opps] == [USDC]
    assert detector.last_stats.prices_defaulted == {WETH, USDC}


def test_fee_defaulted_pool_is_flagged(detector, pool_q, decimals, prices):
    guessed = Pool(
        chain_id=8453,
        token_a=WETH,
        token_b=USDC,
        reserve_a=100 * 10**18,
        reserve_b=300_000 * 10**6,
        fee_defaulted=True,
    )
    opps = detector.scan([WETH, USDC], [guessed, pool_q], decimals, prices, now=NOW)

    assert opps
    assert all(o.fee_defaulted for o in opps)
    assert guessed.pool_id in detector.last_stats.fee_defaulted_pools


def test_chain_filter(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector(chain_id=1)
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


def test_chain_filter_applies_to_prebuilt_index(pool_p, pool_q, decimals, prices):
    index = PoolIndex([pool_p, pool_q])

    assert OpportunityDetector(chain_id=1).scan([WETH, USDC], index, decimals, prices) == []
    assert len(OpportunityDetector(chain_id=8453).scan([WETH, USDC], index, decimals, prices)) == 2


def test_caller_decimal_map_left_untouched(detector, pool_p, pool_q, prices):
    decimals = DecimalMap({WETH: 18})
    detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)

    assert decimals.defaulted == set()
    assert detector.last_stats.decimals_defaulted == {USDC}


def test_scan_is_deterministic(detector, pool_p, pool_q, decimals, prices):
    first = detector.scan([USDC, WETH], [pool_q, pool_p], decimals, prices, now=NOW)
    second = detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)

    assert first == second
    for opp in first:
        assert opp.created_at == NOW
        assert opp.expires_at == NOW + 60


def test_record_for_storage(detector, pool_p, pool_q, decimals, prices):
    opp = detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices, now=NOW)[0]
    record = opp.to_record(8453)

    assert record["status"] == "pending"
    assert record["expires_at"] == int((NOW + 60) * 1000)
    assert json.loads(record["route"])["pools"] == list(opp.pool_ids)


def test_config_from_mapping(pool_p, pool_q, decimals, prices):
    detector = OpportunityDetector({"min_profit_usd": 100})
    assert detector.config.min_profit_usd == 100
    assert detector.scan([WETH, USDC], [pool_p, pool_q], decimals, prices) == []


@pytest.mark.parametrize("config", [{"max_hops": 0}, {"trade_size_usd": -1}, "bad"])
def test_invalid_config_rejected(config):
    with pytest.raises(ConfigurationError):
        OpportunityDetector(config)


def test_get_stats(detector):
    stats = detector.get_stats()
    assert stats["min_profit_usd"] == 1.0
    assert stats["trade_size_usd"] == 50.0
