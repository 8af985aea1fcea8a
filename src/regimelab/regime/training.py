"""Multi-run HMM training and inference across a batch of instruments."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regimelab.config.settings import HMMConfig
from regimelab.core.contracts import HMMPrediction
from regimelab.regime.hmm import HiddenMarkovModel, SeededRandom

logger = logging.getLogger(__name__)


@dataclass
class InstrumentObservations:
    """Discretized observation sequence for one instrument."""

    instrument_id: int
    symbol: str
    observations: List[int]
    sector: str = ""


@dataclass
class TrainedModel:
    instrument_id: int
    symbol: str
    sector: str
    model: HiddenMarkovModel
    log_likelihood: float
    seed: int
    valid_runs: int = 0

    @property
    def is_fallback(self) -> bool:
        return self.valid_runs == 0

    def to_dict(self) -> dict:
        return {
            "instrument_id": self.instrument_id,
            "symbol": self.symbol,
            "sector": self.sector,
            "log_likelihood": self.log_likelihood,
            "seed": self.seed,
            "valid_runs": self.valid_runs,
            "parameters": self.model.get_parameters(),
        }


def run_seed(base_seed: int, instrument_id: int, run: int) -> int:
    return base_seed + instrument_id * 1000 + run


def train_instrument(item: InstrumentObservations, config: HMMConfig) -> TrainedModel:
    """Train ``num_runs`` seeded models for one instrument and keep the best."""
    logger.info(f"Training HMM for {item.symbol} ({len(item.observations)} observations)")

    best: Optional[HiddenMarkovModel] = None
    best_log_likelihood = -math.inf
    best_seed = 0
    valid_runs = 0

    for run in range(config.num_runs):
        seed = run_seed(config.base_seed, item.instrument_id, run)
        model = HiddenMarkovModel(config.num_states, config.num_observations)
        model.random_initialize(SeededRandom(seed))

        log_likelihood = model.train(
            item.observations,
            max_iterations=config.max_iterations,
            tolerance=config.tolerance,
            scaled=config.scaled,
        )

        if not math.isfinite(log_likelihood):
            logger.warning(
                f"{item.symbol}: run {run + 1}/{config.num_runs} failed "
                f"(seed={seed}, log_likelihood={log_likelihood})"
            )
            continue

        valid_runs += 1
        logger.debug(f"{item.symbol}: run {run + 1}/{config.num_runs} seed={seed} "
                     f"log_likelihood={log_likelihood:.4f}")
        if log_likelihood > best_log_likelihood:
            best, best_log_likelihood, best_seed = model, log_likelihood, seed

    if best is None:
        best_seed = run_seed(config.base_seed, item.instrument_id, 0)
        logger.warning(
            f"{item.symbol}: all {config.num_runs} training runs failed, "
            f"using untrained model seeded with {best_seed}"
        )
        best = HiddenMarkovModel(config.num_states, config.num_observations)
        best.random_initialize(SeededRandom(best_seed))
        best_log_likelihood = 0.0

    logger.info(f"{item.symbol}: HMM trained, log_likelihood={best_log_likelihood:.4f} (seed={best_seed})")
    return TrainedModel(
        instrument_id=item.instrument_id,
        symbol=item.symbol,
        sector=item.sector,
        model=best,
        log_likelihood=best_log_likelihood,
        seed=best_seed,
        valid_runs=valid_runs,
    )


def train_multiple_hmms(
    instruments: Sequence[InstrumentObservations],
    config: Optional[HMMConfig] = None,
    max_workers: Optional[int] = None,
) -> List[TrainedModel]:
    """Train one model per instrument.

    Instruments without observations are skipped. With ``max_workers > 1``
    instruments are trained in parallel; every run owns its generator, so
    results are identical to the sequential order.
    """
    config = config or HMMConfig()
    max_workers = max_workers or config.max_workers

    pending = []
    for item in instruments:
        if len(item.observations) == 0:
            logger.warning(f"{item.symbol}: no observations, skipping HMM training")
            continue
        pending.append(item)

    if max_workers and max_workers > 1 and len(pending) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(lambda item: train_instrument(item, config), pending))
    return [train_instrument(item, config) for item in pending]


def predict_with_hmm(
    model: HiddenMarkovModel,
    observations: Sequence[int],
    scaled: bool = False,
) -> HMMPrediction:
    """Decode the regime path and forecast the next state and symbol.

    ``scaled`` should match how the model was trained so the state
    probabilities survive long sequences.
    """
    states = model.viterbi(observations)
    state_probs = model.get_state_probabilities(observations, scaled)
    next_state = model.predict_next_state(observations)
    next_observation = model.predict_next_observation(observations)

    if states:
        current = states[-1]
        prev = states[-2] if len(states) > 1 else current
    else:
        current = prev = int(max(range(model.num_states), key=lambda i: model.initial_prob[i]))

    return HMMPrediction(
        states=states,
        state_probs=state_probs,
        current_state=current,
        prev_state=prev,
        next_state=next_state,
        next_observation=next_observation,
    )
