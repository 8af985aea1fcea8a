from regimelab.regime.hmm import HiddenMarkovModel, SeededRandom
from regimelab.regime.training import (
    InstrumentObservations,
    TrainedModel,
    predict_with_hmm,
    train_multiple_hmms,
)

__all__ = [
    "HiddenMarkovModel",
    "InstrumentObservations",
    "SeededRandom",
    "TrainedModel",
    "predict_with_hmm",
    "train_multiple_hmms",
]
