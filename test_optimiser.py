import math

import pytest

np = pytest.importorskip("numpy")

from bondseq.actions import ActionKind, InvestmentAction
from bondseq.counting import count_strategies
from bondseq.grid import ReturnGrid
from bondseq.optimiser import (
    WAIT,
    CRFHistory,
    CRFOverflowError,
    DecisionTrellis,
    compute_top_k_sequences,
    reconstruct_paths,
    replay_crf,
)


def _grid(tenors, rows):
    return ReturnGrid(tenors=tuple(tenors), returns=np.array(rows, dtype=float))


def _random_grid(seed):
    rng = np.random.default_rng(seed)
    num_tenors = int(rng.integers(1, 4))
    tenors = sorted(int(t) for t in rng.choice(np.arange(1, 7), size=num_tenors, replace=False))
    num_months = int(rng.integers(1, 11))
    returns = rng.uniform(-0.03, 0.08, size=(num_tenors, num_months))
    return _grid(tenors, returns)


def _single_best_crf(grid):
    best = [1.0] + [0.0] * grid.num_months
    for month in range(1, grid.num_months + 1):
        value = best[month - 1]
        for row, tenor in enumerate(grid.tenors):
            if tenor > month:
                break
            value = max(value, best[month - tenor] * (1.0 + grid.returns[row, month - tenor]))
        best[month] = value
    return best[-1]


def _all_crfs(grid):
    crfs = []

    def walk(month, crf):
        if month == grid.num_months:
            crfs.append(crf)
            return
        walk(month + 1, crf)
        for row, tenor in enumerate(grid.tenors):
            if month + tenor > grid.num_months:
                break
            walk(month + tenor, crf * (1.0 + grid.returns[row, month]))

    walk(0, 1.0)
    return sorted(crfs, reverse=True)


def test_single_one_month_tenor_buys_every_month():
    grid = _grid([1], [[0.01, 0.02, 0.00]])

    results = compute_top_k_sequences(grid, 1)

    assert len(results) == 1
    assert results.crfs[0] == pytest.approx(1.01 * 1.02 * 1.00)
    assert results.paths[0] == (
        InvestmentAction.buy(0, 1),
        InvestmentAction.buy(1, 1),
        InvestmentAction.buy(2, 1),
    )


def test_long_tenor_beats_two_short_purchases():
    grid = _grid([1, 2], [[0.01, 0.02], [0.05, 0.00]])

    results = compute_top_k_sequences(grid, 2)

    assert results.crfs == pytest.approx((1.05, 1.01 * 1.02))
    assert results.paths[0] == (InvestmentAction.buy(0, 2),)
    assert results.paths[1] == (InvestmentAction.buy(0, 1), InvestmentAction.buy(1, 1))


@pytest.mark.parametrize(
    "tenors, num_months, expected",
    [
        ((2, 4), 5, 10),
        ((3, 5), 7, 12),
        ((2, 4, 5), 5, 11),
    ],
)
def test_returns_every_strategy_when_fewer_than_requested(tenors, num_months, expected):
    rng = np.random.default_rng(num_months)
    grid = _grid(tenors, rng.uniform(0.0, 0.05, size=(len(tenors), num_months)))

    results = compute_top_k_sequences(grid, 100)

    assert len(results) == count_strategies(grid.tenors, grid.num_months) == expected
    assert len({tuple(a.token for a in p) for p in results.paths}) == expected
    assert list(results.crfs) == sorted(results.crfs, reverse=True)


def test_overflow_above_is_reported_at_final_month():
    grid = _grid([2], [[1e308, 0.0, 1e308, 0.0]])

    with pytest.raises(CRFOverflowError) as excinfo:
        compute_top_k_sequences(grid, 3)

    assert excinfo.value.month == 4
    assert excinfo.value.direction == "above"
    assert "exceeding finite limit (1.798e+308) possible by month 4" in str(excinfo.value)


def test_overflow_error_names_direction_from_sign():
    error = CRFOverflowError(2, -math.inf)

    assert error.month == 2
    assert error.direction == "below"
    assert str(error) == "return below finite limit (-1.798e+308) possible by month 2"


def test_total_loss_ranks_below_every_other_strategy():
    grid = _grid([1], [[-1.0, 0.5]])

    results = compute_top_k_sequences(grid, 4)

    tokens = [",".join(a.token for a in p) for p in results.paths]
    assert tokens == ["w1,b1", "w2", "b1,b1", "b1,w1"]
    assert results.crfs == pytest.approx((1.5, 1.0, 0.0, 0.0))


@pytest.mark.parametrize(
    "grid",
    [
        ReturnGrid(tenors=(), returns=np.zeros((0, 3))),
        ReturnGrid(tenors=(1, 2), returns=np.zeros((2, 0))),
    ],
)
def test_degenerate_grids_return_empty_results(grid):
    results = compute_top_k_sequences(grid, 5)

    assert results.crfs == ()
    assert results.paths == ()


def test_zero_results_requested_is_empty():
    grid = _grid([1], [[0.01, 0.02]])

    assert len(compute_top_k_sequences(grid, 0)) == 0


def test_negative_k_is_rejected():
    grid = _grid([1], [[0.01]])

    with pytest.raises(ValueError):
        compute_top_k_sequences(grid, -1)


def test_non_integer_k_is_rejected():
    grid = _grid([1], [[0.01]])

    with pytest.raises(TypeError):
        compute_top_k_sequences(grid, 2.0)


def test_ties_prefer_buying_then_shorter_tenors():
    grid = _grid([1, 2], [[0.0, 0.0], [0.0, 0.0]])

    results = compute_top_k_sequences(grid, 5)

    tokens = [",".join(a.token for a in p) for p in results.paths]
    assert tokens == ["b1,b1", "w1,b1", "b2", "b1,w1", "w2"]
    assert results.crfs == pytest.approx((1.0,) * 5)


@pytest.mark.parametrize("seed", range(12))
def test_results_match_exhaustive_enumeration(seed):
    grid = _random_grid(seed)
    k = 7

    results = compute_top_k_sequences(grid, k)
    expected = _all_crfs(grid)[:k]

    assert len(results) == len(expected)
    assert list(results.crfs) == pytest.approx(expected)


@pytest.mark.parametrize("seed", range(12))
def test_reconstructed_paths_are_consistent(seed):
    grid = _random_grid(seed)

    results = compute_top_k_sequences(grid, 25)

    assert len(results.crfs) == len(results.paths) <= 25
    assert all(a >= b for a, b in zip(results.crfs, results.crfs[1:]))
    for crf, path in zip(results.crfs, results.paths):
        assert replay_crf(grid, path) == pytest.approx(crf, rel=1e-12)
        assert sum(action.length for action in path) == grid.num_months
        assert path[0].start_month == 0
        for prev, nxt in zip(path, path[1:]):
            assert nxt.start_month == prev.end_month
            assert not (prev.kind is ActionKind.WAIT and nxt.kind is ActionKind.WAIT)
        for action in path:
            if action.is_buy:
                assert action.length in grid.tenors


@pytest.mark.parametrize("seed", range(12))
def test_top_result_matches_single_best_dynamic_program(seed):
    grid = _random_grid(seed)

    results = compute_top_k_sequences(grid, 1)

    assert results.crfs[0] == pytest.approx(_single_best_crf(grid))


def test_repeated_calls_are_identical():
    grid = _random_grid(99)

    first = compute_top_k_sequences(grid, 20)
    second = compute_top_k_sequences(grid, 20)

    assert first == second


def test_return_pcts():
    grid = _grid([1], [[0.5]])

    results = compute_top_k_sequences(grid, 2)

    assert results.return_pcts == pytest.approx((50.0, 0.0))


def test_history_window_evicts_reused_slots():
    history = CRFHistory(num_months=5, window=3, k=2)
    history.open_month(1)
    history.set(1, 0, 1.5)
    history.open_month(2)
    history.set(2, 0, 2.5)

    assert history.get(0, 0) == 1.0
    assert history.get(1, 0) == 1.5
    assert history.get(1, 1) == -math.inf

    history.open_month(3)
    assert history.get(3, 0) == -math.inf
    history.set(3, 0, 3.5)
    history.open_month(4)

    assert history.get(4, 0) == -math.inf
    assert history.ranks(3, 1) == [3.5]


def test_trellis_cells_are_written_once():
    trellis = DecisionTrellis(num_months=2, k=2, max_tenor=2)
    trellis.record(1, 0, WAIT, 0)

    assert trellis.is_populated(1, 0)
    assert not trellis.is_populated(1, 1)
    assert trellis.lookup(1, 0) == (WAIT, 0)
    with pytest.raises(RuntimeError):
        trellis.record(1, 0, 2, 0)


def test_reconstruction_merges_consecutive_waits():
    trellis = DecisionTrellis(num_months=5, k=1, max_tenor=2)
    trellis.record(0, 0, WAIT, -1)
    trellis.record(1, 0, WAIT, 0)
    trellis.record(2, 0, WAIT, 0)
    trellis.record(4, 0, 2, 0)
    trellis.record(5, 0, WAIT, 0)

    (path,) = reconstruct_paths(trellis, num_months=5, num_results=1)

    assert path == (
        InvestmentAction.wait(0, 2),
        InvestmentAction.buy(2, 2),
        InvestmentAction.wait(4, 1),
    )


def test_reconstruction_rejects_unpopulated_ranks():
    trellis = DecisionTrellis(num_months=1, k=2, max_tenor=1)
    trellis.record(0, 0, WAIT, -1)
    trellis.record(1, 0, 1, 0)

    with pytest.raises(RuntimeError):
        reconstruct_paths(trellis, num_months=1, num_results=2)
