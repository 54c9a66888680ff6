"""
NEXUS Neural Network Engine
===========================

A small numpy multilayer perceptron used by the `model`, `train` and
`predict` statements. Models are fully connected stacks of Dense layers,
each followed by an activation, trained with mini-batch gradient descent.

Key Features:
- Dense layers with explicit forward/backward passes
- relu, leaky_relu, sigmoid, tanh and linear activations
- Mean squared error and binary cross-entropy losses
- SGD (with momentum) and Adam optimizers
- Save/load of trained weights as .npz archives

Author: xwest
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Any

import numpy as np

from ..runtime.errors import ModelError

logger = logging.getLogger(__name__)


class ActivationType(Enum):
    """Supported activation functions"""
    RELU = auto()
    LEAKY_RELU = auto()
    SIGMOID = auto()
    TANH = auto()
    LINEAR = auto()


class LossType(Enum):
    """Supported loss functions"""
    MEAN_SQUARED_ERROR = auto()
    BINARY_CROSS_ENTROPY = auto()


class OptimizerType(Enum):
    """Supported optimizers"""
    SGD = auto()
    ADAM = auto()


ACTIVATION_NAMES = {
    "relu": ActivationType.RELU,
    "leaky_relu": ActivationType.LEAKY_RELU,
    "sigmoid": ActivationType.SIGMOID,
    "tanh": ActivationType.TANH,
    "linear": ActivationType.LINEAR,
}

LOSS_NAMES = {
    "mse": LossType.MEAN_SQUARED_ERROR,
    "binary_crossentropy": LossType.BINARY_CROSS_ENTROPY,
}

OPTIMIZER_NAMES = {
    "sgd": OptimizerType.SGD,
    "adam": OptimizerType.ADAM,
}


def _lookup(table: Dict[str, Any], name: str, kind: str):
    try:
        return table[name.lower()]
    except KeyError:
        raise ModelError(
            f"Unknown {kind} '{name}'",
            suggestions=[f"Use one of: {', '.join(sorted(table))}"]
        ) from None


@dataclass
class TrainingConfig:
    """Training configuration"""
    learning_rate: float = 0.01
    batch_size: int = 32
    num_epochs: int = 100
    optimizer: OptimizerType = OptimizerType.ADAM
    loss: LossType = LossType.MEAN_SQUARED_ERROR
    shuffle: bool = True
    seed: Optional[int] = None

    # Progress reporting
    verbose: bool = False
    log_every: int = 10

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> 'TrainingConfig':
        """Build a config from the plain values of a `train` statement."""
        config = cls()
        if "learning_rate" in params:
            config.learning_rate = float(params["learning_rate"])
        if "batch_size" in params:
            config.batch_size = int(params["batch_size"])
        if "epochs" in params:
            config.num_epochs = int(params["epochs"])
        if "optimizer" in params:
            config.optimizer = _lookup(OPTIMIZER_NAMES, str(params["optimizer"]), "optimizer")
        if "loss" in params:
            config.loss = _lookup(LOSS_NAMES, str(params["loss"]), "loss function")
        if "shuffle" in params:
            config.shuffle = bool(params["shuffle"])
        if params.get("seed") is not None:
            config.seed = int(params["seed"])
        if "verbose" in params:
            config.verbose = bool(params["verbose"])

        if config.learning_rate <= 0:
            raise ModelError("learning_rate must be positive")
        if config.batch_size <= 0:
            raise ModelError("batch_size must be positive")
        if config.num_epochs < 0:
            raise ModelError("epochs must not be negative")
        return config


@dataclass
class TrainingHistory:
    """Per-epoch losses and timing of one training run"""
    loss_history: List[float] = field(default_factory=list)
    total_training_time: float = 0.0
    batches_processed: int = 0

    @property
    def final_loss(self) -> float:
        return self.loss_history[-1] if self.loss_history else 0.0

    @property
    def epochs_completed(self) -> int:
        return len(self.loss_history)


class Parameter:
    """A trainable array together with its gradient"""

    def __init__(self, data: np.ndarray):
        self.data = data
        self.grad = np.zeros_like(data)

    @property
    def shape(self):
        return self.data.shape


class Layer(ABC):
    """Abstract base class for neural network layers"""

    def __init__(self):
        self.parameters: Dict[str, Parameter] = {}

    @abstractmethod
    def forward(self, x: np.ndarray) -> np.ndarray:
        """Forward pass"""
        pass

    @abstractmethod
    def backward(self, grad_output: np.ndarray) -> np.ndarray:
        """Backward pass: store parameter gradients, return input gradient"""
        pass

    def parameters_list(self) -> List[Parameter]:
        """Get all trainable parameters"""
        return list(self.parameters.values())


class Dense(Layer):
    """Fully connected layer"""

    def __init__(self, in_features: int, out_features: int, rng: np.random.Generator,
                 activation: ActivationType = ActivationType.RELU):
        super().__init__()
        self.in_features = in_features
        self.out_features = out_features

        # He initialization for the relu family, Xavier otherwise
        if activation in (ActivationType.RELU, ActivationType.LEAKY_RELU):
            scale = np.sqrt(2.0 / in_features)
        else:
            scale = np.sqrt(1.0 / in_features)

        self.parameters['weight'] = Parameter(rng.standard_normal((in_features, out_features)) * scale)
        self.parameters['bias'] = Parameter(np.zeros(out_features))
        self._input: Optional[np.ndarray] = None

    def forward(self, x: np.ndarray) -> np.ndarray:
        self._input = x
        return x @ self.parameters['weight'].data + self.parameters['bias'].data

    def backward(self, grad_output: np.ndarray) -> np.ndarray:
        weight = self.parameters['weight']
        self.parameters['bias'].grad = grad_output.sum(axis=0)
        weight.grad = self._input.T @ grad_output
        return grad_output @ weight.data.T


class Activation(Layer):
    """Element-wise activation layer"""

    def __init__(self, activation_type: ActivationType):
        super().__init__()
        self.activation_type = activation_type
        self._input: Optional[np.ndarray] = None
        self._output: Optional[np.ndarray] = None

    def forward(self, x: np.ndarray) -> np.ndarray:
        self._input = x
        if self.activation_type == ActivationType.RELU:
            result = np.maximum(0, x)
        elif self.activation_type == ActivationType.LEAKY_RELU:
            result = np.where(x > 0, x, 0.01 * x)
        elif self.activation_type == ActivationType.SIGMOID:
            result = 1 / (1 + np.exp(-np.clip(x, -500, 500)))
        elif self.activation_type == ActivationType.TANH:
            result = np.tanh(x)
        else:
            result = x
        self._output = result
        return result

    def backward(self, grad_output: np.ndarray) -> np.ndarray:
        if self.activation_type == ActivationType.RELU:
            return grad_output * (self._input > 0)
        if self.activation_type == ActivationType.LEAKY_RELU:
            return grad_output * np.where(self._input > 0, 1.0, 0.01)
        if self.activation_type == ActivationType.SIGMOID:
            return grad_output * self._output * (1 - self._output)
        if self.activation_type == ActivationType.TANH:
            return grad_output * (1 - self._output ** 2)
        return grad_output


class Optimizer(ABC):
    """Abstract base class for optimizers"""

    def __init__(self, parameters: List[Parameter], learning_rate: float):
        self.parameters = parameters
        self.learning_rate = learning_rate

    @abstractmethod
    def step(self):
        """Update parameters"""
        pass


class AdamOptimizer(Optimizer):
    """Adam optimizer"""

    def __init__(self, parameters: List[Parameter], learning_rate: float = 0.001,
                 beta1: float = 0.9, beta2: float = 0.999, eps: float = 1e-8):
        super().__init__(parameters, learning_rate)
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.t = 0  # Time step

        # Initialize moment estimates
        self.m = [np.zeros_like(param.data) for param in parameters]
        self.v = [np.zeros_like(param.data) for param in parameters]

    def step(self):
        self.t += 1

        for i, param in enumerate(self.parameters):
            # Update biased first and second moment estimates
            self.m[i] = self.beta1 * self.m[i] + (1 - self.beta1) * param.grad
            self.v[i] = self.beta2 * self.v[i] + (1 - self.beta2) * (param.grad ** 2)

            # Bias correction
            m_hat = self.m[i] / (1 - self.beta1 ** self.t)
            v_hat = self.v[i] / (1 - self.beta2 ** self.t)

            param.data -= self.learning_rate * m_hat / (np.sqrt(v_hat) + self.eps)


class SGDOptimizer(Optimizer):
    """SGD optimizer with momentum"""

    def __init__(self, parameters: List[Parameter], learning_rate: float = 0.01, momentum: float = 0.9):
        super().__init__(parameters, learning_rate)
        self.momentum = momentum
        self.velocity = [np.zeros_like(param.data) for param in parameters]

    def step(self):
        for i, param in enumerate(self.parameters):
            self.velocity[i] = self.momentum * self.velocity[i] + param.grad
            param.data -= self.learning_rate * self.velocity[i]


def compute_loss(predictions: np.ndarray, targets: np.ndarray, loss_type: LossType):
    """Return (loss, gradient of the loss with respect to predictions)."""
    count = predictions.size
    if loss_type == LossType.BINARY_CROSS_ENTROPY:
        p = np.clip(predictions, 1e-7, 1 - 1e-7)
        loss = -np.mean(targets * np.log(p) + (1 - targets) * np.log(1 - p))
        grad = (p - targets) / (p * (1 - p)) / count
        return float(loss), grad

    diff = predictions - targets
    return float(np.mean(diff ** 2)), 2.0 * diff / count


class NeuralNetwork:
    """
    Fully connected feed-forward network.

    `architecture` lists layer widths from input to output, e.g. [2, 4, 1]
    is two inputs, one hidden layer of four units and one output.
    """

    def __init__(self, architecture: List[int], activations: Optional[List[str]] = None,
                 seed: Optional[int] = None):
        architecture = [int(size) for size in architecture]
        if len(architecture) < 2:
            raise ModelError("A model needs at least an input and an output layer")
        if any(size <= 0 for size in architecture):
            raise ModelError(f"Layer sizes must be positive, got {architecture}")

        layer_count = len(architecture) - 1
        if activations is None:
            activations = ["tanh"] * (layer_count - 1) + ["sigmoid"]
        if len(activations) != layer_count:
            raise ModelError(f"Expected {layer_count} activations, got {len(activations)}")

        self.architecture = architecture
        self.activation_names = [name.lower() for name in activations]
        activation_types = [_lookup(ACTIVATION_NAMES, name, "activation") for name in activations]

        rng = np.random.default_rng(seed)
        self.layers: List[Layer] = []
        for i, activation in enumerate(activation_types):
            self.layers.append(Dense(architecture[i], architecture[i + 1], rng, activation))
            self.layers.append(Activation(activation))

        self.trained_epochs = 0

    @property
    def input_size(self) -> int:
        return self.architecture[0]

    @property
    def output_size(self) -> int:
        return self.architecture[-1]

    @property
    def parameter_count(self) -> int:
        return sum(param.data.size for layer in self.layers for param in layer.parameters_list())

    def parameters(self) -> List[Parameter]:
        return [param for layer in self.layers for param in layer.parameters_list()]

    def _as_batch(self, data, width: int, what: str) -> np.ndarray:
        array = np.asarray(data, dtype=np.float64)
        if array.ndim == 1:
            if array.size == width:
                array = array.reshape(1, width)
            elif width == 1:
                array = array.reshape(-1, 1)
        if array.ndim != 2 or array.shape[1] != width:
            raise ModelError(f"{what} must have {width} features per sample, got shape {list(array.shape)}")
        return array

    def forward(self, x: np.ndarray) -> np.ndarray:
        """Forward pass through all layers"""
        output = x
        for layer in self.layers:
            output = layer.forward(output)
        return output

    def backward(self, grad: np.ndarray):
        for layer in reversed(self.layers):
            grad = layer.backward(grad)

    def _make_optimizer(self, config: TrainingConfig) -> Optimizer:
        if config.optimizer == OptimizerType.SGD:
            return SGDOptimizer(self.parameters(), config.learning_rate)
        return AdamOptimizer(self.parameters(), config.learning_rate)

    def train(self, inputs, targets, config: Optional[TrainingConfig] = None) -> TrainingHistory:
        """Mini-batch training loop"""
        config = config or TrainingConfig()
        x = self._as_batch(inputs, self.input_size, "inputs")
        y = self._as_batch(targets, self.output_size, "targets")
        if len(x) != len(y):
            raise ModelError(f"Got {len(x)} input samples but {len(y)} target samples")

        rng = np.random.default_rng(config.seed)
        optimizer = self._make_optimizer(config)
        history = TrainingHistory()
        report = logger.info if config.verbose else logger.debug

        report("Training %s for %d epochs (batch size %d, %s, %s)",
               self.architecture, config.num_epochs, config.batch_size,
               config.optimizer.name.lower(), config.loss.name.lower())

        training_start = time.perf_counter()
        for epoch in range(config.num_epochs):
            order = rng.permutation(len(x)) if config.shuffle else np.arange(len(x))
            epoch_loss = 0.0
            batches_in_epoch = 0

            for start in range(0, len(x), config.batch_size):
                batch = order[start:start + config.batch_size]
                predictions = self.forward(x[batch])
                loss, grad = compute_loss(predictions, y[batch], config.loss)
                self.backward(grad)
                optimizer.step()

                epoch_loss += loss
                batches_in_epoch += 1

            history.batches_processed += batches_in_epoch
            history.loss_history.append(epoch_loss / max(batches_in_epoch, 1))

            if config.log_every and epoch % config.log_every == 0:
                report("Epoch %d/%d: loss = %.6f", epoch, config.num_epochs, history.loss_history[-1])

        history.total_training_time = time.perf_counter() - training_start
        self.trained_epochs += history.epochs_completed
        report("Training finished in %.3fs, final loss %.6f",
               history.total_training_time, history.final_loss)
        return history

    def predict(self, inputs) -> np.ndarray:
        """Predict one sample (1-D input) or a batch (2-D input)."""
        array = np.asarray(inputs, dtype=np.float64)
        single = array.ndim == 1 and array.size == self.input_size
        output = self.forward(self._as_batch(array, self.input_size, "input"))
        return output[0] if single else output

    def evaluate(self, inputs, targets, loss: LossType = LossType.MEAN_SQUARED_ERROR) -> float:
        x = self._as_batch(inputs, self.input_size, "inputs")
        y = self._as_batch(targets, self.output_size, "targets")
        value, _ = compute_loss(self.forward(x), y, loss)
        return value

    def summary(self) -> str:
        lines = [f"NeuralNetwork {self.architecture}"]
        for i, activation in enumerate(self.activation_names):
            lines.append(f"  Dense {self.architecture[i]} -> {self.architecture[i + 1]} ({activation})")
        lines.append(f"  Parameters: {self.parameter_count}")
        lines.append(f"  Trained epochs: {self.trained_epochs}")
        return "\n".join(lines)

    def save(self, filepath: str):
        """Write architecture and weights to an .npz archive."""
        arrays = {
            "architecture": np.array(self.architecture),
            "activations": np.array(self.activation_names),
            "trained_epochs": np.array(self.trained_epochs),
        }
        for i, param in enumerate(self.parameters()):
            arrays[f"param_{i}"] = param.data
        try:
            np.savez(filepath, **arrays)
        except OSError as e:
            raise ModelError(f"Cannot save model to '{filepath}': {e}") from e
        logger.debug("Saved model %s to %s", self.architecture, filepath)

    @classmethod
    def load(cls, filepath: str) -> 'NeuralNetwork':
        if not os.path.exists(filepath) and os.path.exists(filepath + ".npz"):
            filepath += ".npz"
        try:
            with np.load(filepath) as archive:
                network = cls([int(size) for size in archive["architecture"]],
                              [str(name) for name in archive["activations"]])
                network.trained_epochs = int(archive["trained_epochs"])
                for i, param in enumerate(network.parameters()):
                    stored = archive[f"param_{i}"]
                    if stored.shape != param.shape:
                        raise ModelError(f"Corrupt model file '{filepath}'")
                    param.data = stored.astype(np.float64)
        except (OSError, KeyError, ValueError) as e:
            raise ModelError(f"Cannot load model from '{filepath}': {e}") from e
        logger.debug("Loaded model %s from %s", network.architecture, filepath)
        return network
