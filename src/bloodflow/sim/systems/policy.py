from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from pygame.math import Vector2

from ..core.config import PolicyConfig


@dataclass(frozen=True, slots=True)
class PolicyWeights:
    """Weights of a 3 -> 2 (tanh) -> 2 (linear) feed-forward network."""

    hidden: Tuple[Tuple[float, float, float], Tuple[float, float, float]]
    hidden_bias: Tuple[float, float]
    output: Tuple[Tuple[float, float], Tuple[float, float]]

    def __post_init__(self) -> None:
        if len(self.hidden) != 2 or any(len(row) != 3 for row in self.hidden):
            raise ValueError("hidden weights must be a 2x3 matrix")
        if len(self.hidden_bias) != 2:
            raise ValueError("hidden bias must have two entries")
        if len(self.output) != 2 or any(len(row) != 2 for row in self.output):
            raise ValueError("output weights must be a 2x2 matrix")

    @classmethod
    def from_config(cls, config: PolicyConfig) -> "PolicyWeights":
        return cls(
            hidden=tuple(tuple(float(w) for w in row) for row in config.hidden_weights),
            hidden_bias=tuple(float(b) for b in config.hidden_bias),
            output=tuple(tuple(float(w) for w in row) for row in config.output_weights),
        )

    def output_bound(self) -> Tuple[float, float]:
        """Largest possible ``|fx|`` and ``|fy|``: tanh keeps hidden units inside [-1, 1]."""
        return (
            abs(self.output[0][0]) + abs(self.output[0][1]),
            abs(self.output[1][0]) + abs(self.output[1][1]),
        )


class TumorPolicy:
    """Fixed steering heuristic for the policy-driven cell type.

    Inputs are ``[shear, wall_distance, density]``; the output is a force
    vector. Nothing is learned at runtime, so equal inputs give equal forces.
    """

    def __init__(self, weights: PolicyWeights) -> None:
        self._weights = weights

    @property
    def weights(self) -> PolicyWeights:
        return self._weights

    def evaluate(self, inputs: Sequence[float]) -> Vector2:
        if len(inputs) != 3:
            raise ValueError(f"policy expects 3 inputs, got {len(inputs)}")
        weights = self._weights
        hidden = [
            math.tanh(sum(w * x for w, x in zip(row, inputs)) + bias)
            for row, bias in zip(weights.hidden, weights.hidden_bias)
        ]
        out = weights.output
        return Vector2(
            out[0][0] * hidden[0] + out[0][1] * hidden[1],
            out[1][0] * hidden[0] + out[1][1] * hidden[1],
        )
