"""Discrete Hidden Markov Model for market regime detection.

Implements the forward/backward recursions, Baum-Welch (EM) re-estimation,
Viterbi decoding and one-step-ahead prediction over a finite observation
alphabet. Hidden states are interpreted as market regimes
(bullish=0, ranging=1, bearish=2 in the canonical three-state setup).

The default recursions work on raw probabilities, matching the reference
behaviour exactly for short sequences. For long sequences, where raw
probabilities underflow, ``train(..., scaled=True)`` uses per-step
normalisation and ``log_likelihood`` evaluates in log space.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import logsumexp

logger = logging.getLogger(__name__)

EPSILON = 1e-10

IterationCallback = Callable[[int, "HiddenMarkovModel", float], None]


class SeededRandom:
    """Linear congruential generator giving reproducible draws in [0, 1).

    Each training run owns its own instance so that parallel runs never
    share generator state.
    """

    MULTIPLIER = 1664525
    INCREMENT = 1013904223
    MODULUS = 2 ** 32

    def __init__(self, seed: int):
        self.seed = int(seed) % self.MODULUS

    def random(self) -> float:
        self.seed = (self.seed * self.MULTIPLIER + self.INCREMENT) % self.MODULUS
        return self.seed / self.MODULUS

    def draw(self, n: int) -> np.ndarray:
        return np.array([self.random() for _ in range(n)], dtype=float)


class HiddenMarkovModel:
    """Discrete-emission HMM with row-stochastic parameters."""

    def __init__(self, num_states: int, num_observations: int):
        if num_states < 1:
            raise ValueError(f"num_states must be >= 1, got {num_states}")
        if num_observations < 1:
            raise ValueError(f"num_observations must be >= 1, got {num_observations}")

        self.num_states = int(num_states)
        self.num_observations = int(num_observations)

        self.initial_prob = np.full(self.num_states, 1.0 / self.num_states)
        self.transition_prob = np.full((self.num_states, self.num_states), 1.0 / self.num_states)
        self.emission_prob = np.full(
            (self.num_states, self.num_observations), 1.0 / self.num_observations
        )

    def random_initialize(self, rng: SeededRandom) -> None:
        """Draw and normalise π, then each row of A, then each row of B."""
        n, m = self.num_states, self.num_observations

        pi = rng.draw(n)
        self.initial_prob = pi / pi.sum()

        transition = np.empty((n, n))
        for i in range(n):
            row = rng.draw(n)
            transition[i] = row / row.sum()
        self.transition_prob = transition

        emission = np.empty((n, m))
        for i in range(n):
            row = rng.draw(m)
            emission[i] = row / row.sum()
        self.emission_prob = emission

    def _validate(self, observations: Sequence[int]) -> np.ndarray:
        obs = np.asarray(observations, dtype=int).reshape(-1)
        if obs.size and (obs.min() < 0 or obs.max() >= self.num_observations):
            raise ValueError(
                f"Observation symbols must lie in [0, {self.num_observations}), "
                f"got range [{obs.min()}, {obs.max()}]"
            )
        return obs

    # ------------------------------------------------------------------
    # Forward / backward
    # ------------------------------------------------------------------

    def forward(self, observations: Sequence[int]) -> np.ndarray:
        """Unscaled forward probabilities ``alpha[t][i]``."""
        obs = self._validate(observations)
        T = len(obs)
        alpha = np.zeros((T, self.num_states))
        if T == 0:
            return alpha

        alpha[0] = self.initial_prob * self.emission_prob[:, obs[0]]
        for t in range(1, T):
            alpha[t] = (alpha[t - 1] @ self.transition_prob) * self.emission_prob[:, obs[t]]
        return alpha

    def backward(self, observations: Sequence[int]) -> np.ndarray:
        """Unscaled backward probabilities ``beta[t][i]``."""
        obs = self._validate(observations)
        T = len(obs)
        beta = np.zeros((T, self.num_states))
        if T == 0:
            return beta

        beta[T - 1] = 1.0
        for t in range(T - 2, -1, -1):
            beta[t] = self.transition_prob @ (self.emission_prob[:, obs[t + 1]] * beta[t + 1])
        return beta

    def forward_scaled(self, observations: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
        """Forward pass normalised per step.

        Returns:
            ``(alpha_hat, scales)`` where each ``alpha_hat[t]`` sums to 1 and
            ``sum(log(scales))`` is the sequence log-likelihood. A zero scale
            marks an impossible sequence; later rows are left at zero.
        """
        obs = self._validate(observations)
        T = len(obs)
        alpha = np.zeros((T, self.num_states))
        scales = np.zeros(T)
        if T == 0:
            return alpha, scales

        current = self.initial_prob * self.emission_prob[:, obs[0]]
        for t in range(T):
            if t > 0:
                current = (alpha[t - 1] @ self.transition_prob) * self.emission_prob[:, obs[t]]
            scales[t] = current.sum()
            if scales[t] == 0:
                break
            alpha[t] = current / scales[t]
        return alpha, scales

    def backward_scaled(self, observations: Sequence[int], scales: np.ndarray) -> np.ndarray:
        """Backward pass sharing the forward scaling factors."""
        obs = self._validate(observations)
        T = len(obs)
        beta = np.zeros((T, self.num_states))
        if T == 0:
            return beta

        beta[T - 1] = 1.0
        for t in range(T - 2, -1, -1):
            if scales[t + 1] == 0:
                continue
            beta[t] = (
                self.transition_prob @ (self.emission_prob[:, obs[t + 1]] * beta[t + 1])
            ) / scales[t + 1]
        return beta

    def log_likelihood(self, observations: Sequence[int]) -> float:
        """Log P(observations | model), computed in log space."""
        obs = self._validate(observations)
        if len(obs) == 0:
            return 0.0

        with np.errstate(divide="ignore"):
            log_pi = np.log(self.initial_prob)
            log_a = np.log(self.transition_prob)
            log_b = np.log(self.emission_prob)

        log_alpha = log_pi + log_b[:, obs[0]]
        for o in obs[1:]:
            log_alpha = logsumexp(log_alpha[:, None] + log_a, axis=0) + log_b[:, o]
        return float(logsumexp(log_alpha))

    # ------------------------------------------------------------------
    # Baum-Welch
    # ------------------------------------------------------------------

    def _reestimate(self, obs: np.ndarray, gamma: np.ndarray, xi: np.ndarray) -> None:
        """M-step. A row whose state has no posterior mass keeps its previous values."""
        self.initial_prob = gamma[0].copy()

        if len(obs) > 1:
            gamma_sum = gamma[:-1].sum(axis=0)
            xi_sum = xi.sum(axis=0)
            for i in range(self.num_states):
                if gamma_sum[i] > 0:
                    self.transition_prob[i] = xi_sum[i] / gamma_sum[i]

        onehot = np.eye(self.num_observations)[obs]
        emitted = gamma.T @ onehot
        gamma_total = gamma.sum(axis=0)
        for i in range(self.num_states):
            if gamma_total[i] > 0:
                self.emission_prob[i] = emitted[i] / gamma_total[i]

    def _expectations(self, obs: np.ndarray, scaled: bool) -> Optional[Tuple[np.ndarray, np.ndarray, float]]:
        """E-step. Returns ``(gamma, xi, log_likelihood)``, or None on zero probability mass."""
        T = len(obs)
        if scaled:
            alpha, scales = self.forward_scaled(obs)
            if np.any(scales == 0):
                return None
            beta = self.backward_scaled(obs, scales)
            gamma = alpha * beta
            xi = np.empty((max(T - 1, 0), self.num_states, self.num_states))
            for t in range(T - 1):
                weighted = self.emission_prob[:, obs[t + 1]] * beta[t + 1]
                xi[t] = alpha[t][:, None] * self.transition_prob * weighted[None, :] / scales[t + 1]
            return gamma, xi, float(np.log(scales).sum())

        alpha = self.forward(obs)
        beta = self.backward(obs)
        p_obs = float(alpha[T - 1].sum())
        if p_obs == 0:
            return None

        gamma = alpha * beta / p_obs
        xi = np.empty((max(T - 1, 0), self.num_states, self.num_states))
        for t in range(T - 1):
            weighted = self.emission_prob[:, obs[t + 1]] * beta[t + 1]
            xi[t] = alpha[t][:, None] * self.transition_prob * weighted[None, :] / p_obs
        return gamma, xi, math.log(p_obs + EPSILON)

    def train(
        self,
        observations: Sequence[int],
        max_iterations: int = 100,
        tolerance: float = 1e-6,
        scaled: bool = False,
        callback: Optional[IterationCallback] = None,
    ) -> float:
        """Re-estimate parameters with Baum-Welch.

        An iteration whose sequence probability is zero performs no update
        but still counts against ``max_iterations``. Training stops once the
        log-likelihood changes by less than ``tolerance``.

        Args:
            observations: Symbols in ``[0, num_observations)``
            max_iterations: Iteration budget
            tolerance: Convergence threshold on the log-likelihood change
            scaled: Use the normalised recursions for long sequences
            callback: Called as ``callback(iteration, model, log_likelihood)``
                after every parameter update

        Returns:
            Final log-likelihood, or ``-inf`` if no iteration had
            positive probability mass
        """
        obs = self._validate(observations)
        if len(obs) == 0:
            return -math.inf

        prev_log_likelihood = -math.inf
        for iteration in range(max_iterations):
            expectations = self._expectations(obs, scaled)
            if expectations is None:
                continue

            gamma, xi, log_likelihood = expectations
            self._reestimate(obs, gamma, xi)

            if callback is not None:
                callback(iteration, self, log_likelihood)

            if abs(log_likelihood - prev_log_likelihood) < tolerance:
                logger.debug(f"HMM training converged after {iteration + 1} iterations")
                return log_likelihood
            prev_log_likelihood = log_likelihood

        return prev_log_likelihood

    # ------------------------------------------------------------------
    # Decoding and prediction
    # ------------------------------------------------------------------

    def viterbi(self, observations: Sequence[int]) -> List[int]:
        """Most likely hidden-state path; ties resolve to the lowest state index."""
        obs = self._validate(observations)
        T = len(obs)
        if T == 0:
            return []

        log_a = np.log(self.transition_prob + EPSILON)
        log_b = np.log(self.emission_prob + EPSILON)

        delta = np.log(self.initial_prob + EPSILON) + log_b[:, obs[0]]
        pointers = np.zeros((T, self.num_states), dtype=int)
        for t in range(1, T):
            candidates = delta[:, None] + log_a
            pointers[t] = np.argmax(candidates, axis=0)
            delta = candidates[pointers[t], np.arange(self.num_states)] + log_b[:, obs[t]]

        path = [int(np.argmax(delta))]
        for t in range(T - 1, 0, -1):
            path.append(int(pointers[t][path[-1]]))
        path.reverse()
        return path

    def _current_state(self, observations: Sequence[int]) -> int:
        states = self.viterbi(observations)
        if states:
            return states[-1]
        return int(np.argmax(self.initial_prob))

    def predict_next_state(self, observations: Sequence[int]) -> int:
        return int(np.argmax(self.transition_prob[self._current_state(observations)]))

    def predict_next_observation(self, observations: Sequence[int]) -> int:
        return int(np.argmax(self.emission_prob[self._current_state(observations)]))

    def get_state_probabilities(self, observations: Sequence[int], scaled: bool = False) -> List[float]:
        """Smoothed marginal over hidden states at the final step.

        With ``scaled`` the normalised recursions take over once the raw
        sequence probability underflows to zero.
        """
        obs = self._validate(observations)
        if len(obs) == 0:
            return [1.0 / self.num_states] * self.num_states

        alpha = self.forward(obs)
        beta = self.backward(obs)
        p_obs = float(alpha[-1].sum())
        if p_obs > 0 or not scaled:
            return (alpha[-1] * beta[-1] / (p_obs + EPSILON)).tolist()

        alpha_hat, scales = self.forward_scaled(obs)
        if np.any(scales == 0):
            return [0.0] * self.num_states
        marginal = alpha_hat[-1] * self.backward_scaled(obs, scales)[-1]
        return (marginal / marginal.sum()).tolist()

    # ------------------------------------------------------------------
    # Parameter access
    # ------------------------------------------------------------------

    def get_parameters(self) -> Dict[str, Any]:
        return {
            "num_states": self.num_states,
            "num_observations": self.num_observations,
            "initial_prob": self.initial_prob.tolist(),
            "transition_prob": self.transition_prob.tolist(),
            "emission_prob": self.emission_prob.tolist(),
        }

    def set_parameters(self, params: Dict[str, Any]) -> None:
        pi = np.asarray(params["initial_prob"], dtype=float)
        a = np.asarray(params["transition_prob"], dtype=float)
        b = np.asarray(params["emission_prob"], dtype=float)
        if pi.shape != (self.num_states,) or a.shape != (self.num_states, self.num_states):
            raise ValueError("Parameter shapes do not match num_states")
        if b.shape != (self.num_states, self.num_observations):
            raise ValueError("Emission shape does not match (num_states, num_observations)")
        self.initial_prob, self.transition_prob, self.emission_prob = pi, a, b

    @classmethod
    def from_parameters(cls, params: Dict[str, Any]) -> HiddenMarkovModel:
        model = cls(params["num_states"], params["num_observations"])
        model.set_parameters(params)
        return model
