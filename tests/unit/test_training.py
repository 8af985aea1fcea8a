"""Tests for multi-run HMM training across instruments"""

import logging
import math

import numpy as np
import pytest

from regimelab.config.settings import HMMConfig
from regimelab.regime.hmm import HiddenMarkovModel, SeededRandom
from regimelab.regime.training import (
    InstrumentObservations,
    predict_with_hmm,
    run_seed,
    train_instrument,
    train_multiple_hmms,
)

OBS_A = [0, 1, 1, 2, 3, 3, 3, 4, 5, 9, 8, 7, 7, 6, 5, 4, 3, 2, 1, 0]
OBS_B = [9, 9, 8, 8, 7, 1, 1, 0, 0, 2, 4, 6, 8, 9, 9, 5, 5, 5, 3, 3]


@pytest.fixture
def config():
    return HMMConfig(num_states=3, num_observations=10, max_iterations=15, num_runs=3)


@pytest.mark.unit
def test_run_seed():
    assert run_seed(12345, 2, 1) == 14346


@pytest.mark.unit
def test_best_run_is_kept(config):
    item = InstrumentObservations(1, "AAA", OBS_A)
    trained = train_instrument(item, config)

    lls = []
    for run in range(config.num_runs):
        model = HiddenMarkovModel(3, 10)
        model.random_initialize(SeededRandom(run_seed(config.base_seed, 1, run)))
        lls.append(model.train(OBS_A, config.max_iterations, config.tolerance, scaled=config.scaled))

    assert trained.log_likelihood == max(lls)
    assert trained.seed == run_seed(config.base_seed, 1, lls.index(max(lls)))
    assert trained.valid_runs == 3
    assert not trained.is_fallback


@pytest.mark.unit
def test_fallback_when_every_run_fails(caplog):
    config = HMMConfig(max_iterations=0, num_runs=2)
    with caplog.at_level(logging.WARNING):
        trained = train_instrument(InstrumentObservations(4, "BAD", OBS_A), config)

    expected = HiddenMarkovModel(3, 10)
    expected.random_initialize(SeededRandom(config.base_seed + 4000))

    assert trained.is_fallback
    assert trained.log_likelihood == 0.0
    assert np.array_equal(trained.model.emission_prob, expected.emission_prob)
    assert "training runs failed" in caplog.text


@pytest.mark.unit
def test_empty_instruments_are_skipped(config, caplog):
    items = [
        InstrumentObservations(1, "AAA", OBS_A),
        InstrumentObservations(2, "EMPTY", []),
        InstrumentObservations(3, "BBB", OBS_B),
    ]
    with caplog.at_level(logging.WARNING):
        trained = train_multiple_hmms(items, config)

    assert [t.symbol for t in trained] == ["AAA", "BBB"]
    assert "EMPTY" in caplog.text


@pytest.mark.unit
def test_parallel_matches_sequential(config):
    items = [InstrumentObservations(1, "AAA", OBS_A), InstrumentObservations(2, "BBB", OBS_B)]
    sequential = train_multiple_hmms(items, config)
    parallel = train_multiple_hmms(items, config, max_workers=2)

    for s, p in zip(sequential, parallel):
        assert s.symbol == p.symbol
        assert s.log_likelihood == p.log_likelihood
        assert np.array_equal(s.model.transition_prob, p.model.transition_prob)


@pytest.mark.unit
def test_trained_model_to_dict(config):
    data = train_instrument(InstrumentObservations(1, "AAA", OBS_A), config).to_dict()
    assert data["symbol"] == "AAA"
    assert len(data["parameters"]["transition_prob"]) == 3
    assert math.isfinite(data["log_likelihood"])


class TestPrediction:

    @pytest.mark.unit
    def test_prediction_fields(self, config):
        trained = train_instrument(InstrumentObservations(1, "AAA", OBS_A), config)
        prediction = predict_with_hmm(trained.model, OBS_A)

        assert len(prediction.states) == len(OBS_A)
        assert prediction.current_state == prediction.states[-1]
        assert prediction.prev_state == prediction.states[-2]
        assert len(prediction.state_probs) == 3
        assert 0 <= prediction.next_state < 3
        assert 0 <= prediction.next_observation < 10

    @pytest.mark.unit
    def test_single_observation(self):
        model = HiddenMarkovModel(3, 10)
        model.random_initialize(SeededRandom(1))
        prediction = predict_with_hmm(model, [4])
        assert prediction.prev_state == prediction.current_state
