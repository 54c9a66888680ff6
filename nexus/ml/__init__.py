"""
NEXUS machine learning engine: a numpy multilayer perceptron driven by
the `model`, `train` and `predict` statements.

Author: xwest
"""

from .neural_network import (
    NeuralNetwork, TrainingConfig, TrainingHistory, ActivationType, LossType, OptimizerType,
    Dense, Activation, AdamOptimizer, SGDOptimizer
)

__all__ = [
    "NeuralNetwork",
    "TrainingConfig",
    "TrainingHistory",
    "ActivationType",
    "LossType",
    "OptimizerType",
    "Dense",
    "Activation",
    "AdamOptimizer",
    "SGDOptimizer",
]
