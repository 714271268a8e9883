"""
Leaf Validation Module for Sugarcane Leaf Scanning
Determines if an image contains a sugarcane leaf using a pre-trained model,
falling back to heuristic pixel analysis whenever the model is unavailable
"""

import os
import time
import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from enum import Enum
from functools import partial
from typing import Callable, Optional, Tuple

import joblib
import numpy as np

from .errors import InputError, ModelLoadError
from .heuristics import HeuristicLeafAnalyzer
from .preprocessing import ImagePreprocessor
from .quality import QualityReport, assess_quality
from .results import (
    ValidationResult, METHOD_MODEL, MSG_DETECTED, MSG_MODERATE, MSG_NOT_LEAF
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = os.path.join('models', 'leaf_model.joblib')

HIGH_CONFIDENCE = 0.7
MODERATE_CONFIDENCE = 0.5

# Label used for the leaf class when the model exposes classes_
LEAF_LABEL = 1


class ModelState(str, Enum):
    UNLOADED = 'unloaded'
    LOADING = 'loading'
    READY = 'ready'
    LOAD_FAILED = 'load_failed'


class InferenceError(Exception):
    """The loaded model produced no usable prediction"""


def load_leaf_model(model_path: str):
    """
    Load a pre-trained leaf model saved with joblib

    Args:
        model_path: Path to the joblib file

    Returns:
        Estimator exposing predict_proba
    """
    if not os.path.exists(model_path):
        raise ModelLoadError(f"Leaf model not found at {model_path}")

    model = joblib.load(model_path)
    if not hasattr(model, 'predict_proba'):
        raise ModelLoadError(f"Model at {model_path} does not expose predict_proba")

    logger.info(f"Model loaded from {model_path}")
    return model


def interpret_probabilities(not_leaf_prob: float, leaf_prob: float) -> ValidationResult:
    """Apply the confidence thresholds to the two class probabilities"""
    is_leaf = leaf_prob > not_leaf_prob
    confidence = max(not_leaf_prob, leaf_prob)

    if is_leaf and confidence > HIGH_CONFIDENCE:
        return ValidationResult(True, confidence, MSG_DETECTED, METHOD_MODEL)
    if is_leaf and confidence > MODERATE_CONFIDENCE:
        return ValidationResult(True, confidence, MSG_MODERATE, METHOD_MODEL)
    return ValidationResult(False, confidence, MSG_NOT_LEAF, METHOD_MODEL)


class PrimaryLeafClassifier:
    """Wraps a loaded model behind the leaf/not-leaf contract"""

    method = METHOD_MODEL

    def __init__(self, model, preprocessor: ImagePreprocessor,
                 inference_lock: Optional[threading.Lock] = None):
        self.model = model
        self.preprocessor = preprocessor
        self._inference_lock = inference_lock
        self._leaf_column = self._find_leaf_column(model)

    @staticmethod
    def _find_leaf_column(model) -> int:
        classes = getattr(model, 'classes_', None)
        if classes is None:
            return 1
        classes = list(classes)
        if LEAF_LABEL not in classes or len(classes) != 2:
            raise ModelLoadError(f"Expected binary classes [0, 1], got {classes}")
        return classes.index(LEAF_LABEL)

    def predict_proba(self, batch: np.ndarray) -> Tuple[float, float]:
        """
        Run inference on a preprocessed batch of one image

        Returns:
            (not_leaf_probability, leaf_probability)
        """
        model = self.model
        if model is None:
            raise InferenceError("Model has been disposed")

        flat = batch.reshape(batch.shape[0], -1)
        if self._inference_lock is not None:
            with self._inference_lock:
                probabilities = model.predict_proba(flat)
        else:
            probabilities = model.predict_proba(flat)

        probabilities = np.asarray(probabilities, dtype=np.float64)
        if probabilities.ndim != 2 or probabilities.shape[1] != 2:
            raise InferenceError(f"Unexpected prediction shape {probabilities.shape}")
        if not np.all(np.isfinite(probabilities[0])):
            raise InferenceError("Model returned non-finite probabilities")

        leaf_prob = float(probabilities[0, self._leaf_column])
        not_leaf_prob = float(probabilities[0, 1 - self._leaf_column])
        return not_leaf_prob, leaf_prob

    def warm_up(self):
        """Run one prediction on an all-zero input"""
        self.predict_proba(self.preprocessor.zeros_tensor())

    def classify(self, image: np.ndarray) -> ValidationResult:
        with self.preprocessor.tensor(image) as batch:
            not_leaf_prob, leaf_prob = self.predict_proba(batch)
        logger.debug(f"Prediction: not_sugarcane={not_leaf_prob:.3f}, sugarcane={leaf_prob:.3f}")
        return interpret_probabilities(not_leaf_prob, leaf_prob)

    def close(self):
        close = getattr(self.model, 'close', None)
        if callable(close):
            close()
        self.model = None


class LeafValidationEngine:
    """
    Validates whether images show a sugarcane leaf.

    One engine is created per process and shared by all callers. The model
    is loaded at most once at a time: concurrent callers wait on the same
    in-flight load. While the model is not ready every call is answered by
    the heuristic analyzer, so validate() always returns a result.
    """

    def __init__(self, model_path: Optional[str] = None,
                 loader: Optional[Callable[[], object]] = None,
                 preprocessor: Optional[ImagePreprocessor] = None,
                 heuristic: Optional[HeuristicLeafAnalyzer] = None,
                 load_timeout: float = 30.0,
                 retry_interval: float = 60.0,
                 serialize_inference: bool = False):
        """
        Initialize the engine (no model is loaded until first use)

        Args:
            model_path: Path to a joblib leaf model, used by the default loader
            loader: Callable returning a model; overrides model_path
            preprocessor: Image decoder and tensor builder
            heuristic: Fallback analyzer
            load_timeout: Seconds callers wait for a load before falling back
            retry_interval: Seconds after a failed load before the next attempt
            serialize_inference: Run model inference under a lock
        """
        self.model_path = model_path or DEFAULT_MODEL_PATH
        self._loader = loader or partial(load_leaf_model, self.model_path)
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.heuristic = heuristic or HeuristicLeafAnalyzer()
        self.load_timeout = load_timeout
        self.retry_interval = retry_interval

        self._lock = threading.Lock()
        self._inference_lock = threading.Lock() if serialize_inference else None
        self._state = ModelState.UNLOADED
        self._classifier: Optional[PrimaryLeafClassifier] = None
        self._load_future: Optional[Future] = None
        self._load_deadline = 0.0
        self._failed_at: Optional[float] = None
        self._generation = 0
        self._load_attempts = 0

    @classmethod
    def from_config(cls, config, **kwargs) -> 'LeafValidationEngine':
        return cls(
            model_path=config.LEAF_MODEL_PATH,
            load_timeout=config.LEAF_MODEL_LOAD_TIMEOUT,
            retry_interval=config.LEAF_MODEL_RETRY_INTERVAL,
            **kwargs,
        )

    @property
    def state(self) -> ModelState:
        with self._lock:
            return self._state

    @property
    def load_attempts(self) -> int:
        """Number of model loads actually started"""
        with self._lock:
            return self._load_attempts

    def load(self, force: bool = False) -> bool:
        """
        Ensure the model is loaded, joining any load already in flight

        Args:
            force: Retry immediately after a failed load

        Returns:
            True if the model is ready
        """
        future, deadline = self._begin_load(force)
        if future is None:
            return self.state is ModelState.READY

        try:
            loaded = future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            logger.warning(f"Leaf model load exceeded {self.load_timeout:.1f}s, "
                           f"using heuristic validation")
            return False
        except ModelLoadError as e:
            logger.warning(f"Leaf model unavailable: {e}")
            return False
        return bool(loaded) and self.state is ModelState.READY

    def _begin_load(self, force: bool) -> Tuple[Optional[Future], float]:
        with self._lock:
            if self._state is ModelState.READY:
                return None, 0.0
            if self._state is ModelState.LOADING:
                return self._load_future, self._load_deadline
            if (self._state is ModelState.LOAD_FAILED and not force and
                    time.monotonic() - self._failed_at < self.retry_interval):
                return None, 0.0

            self._load_attempts += 1
            self._generation += 1
            generation = self._generation
            future = Future()
            deadline = time.monotonic() + self.load_timeout
            self._load_future = future
            self._load_deadline = deadline
            self._state = ModelState.LOADING

        thread = threading.Thread(
            target=self._run_load, args=(future, generation),
            name=f"leaf-model-load-{generation}", daemon=True,
        )
        thread.start()
        return future, deadline

    def _run_load(self, future: Future, generation: int):
        logger.info("Loading sugarcane leaf detection model...")
        try:
            model = self._loader()
            classifier = PrimaryLeafClassifier(model, self.preprocessor, self._inference_lock)
            classifier.warm_up()
        except Exception as e:
            error = e if isinstance(e, ModelLoadError) else ModelLoadError(f"Model loading failed: {e}")
            with self._lock:
                if generation == self._generation:
                    self._state = ModelState.LOAD_FAILED
                    self._failed_at = time.monotonic()
                    self._load_future = None
            logger.error(f"Failed to load leaf validation model: {e}")
            future.set_exception(error)
            return

        with self._lock:
            current = generation == self._generation
            if current:
                self._classifier = classifier
                self._state = ModelState.READY
                self._failed_at = None
                self._load_future = None

        if current:
            logger.info("Sugarcane leaf detection model loaded successfully")
        else:
            logger.info("Discarding leaf model whose load finished after dispose()")
            classifier.close()
        future.set_result(current)

    def _select_strategy(self):
        """Primary classifier when the model is ready, heuristic otherwise"""
        with self._lock:
            if self._state is ModelState.READY and self._classifier is not None:
                return self._classifier
        return self.heuristic

    def validate(self, image) -> ValidationResult:
        """
        Decide whether an image shows a sugarcane leaf

        Args:
            image: Encoded bytes, file path, file-like object, PIL image or RGB array

        Returns:
            ValidationResult; never raises
        """
        try:
            rgb = self.preprocessor.load_image(image)
        except InputError as e:
            logger.warning(f"Rejecting unreadable image: {e}")
            return ValidationResult.unreadable(str(e))

        self.load()
        strategy = self._select_strategy()
        if strategy is not self.heuristic:
            try:
                return strategy.classify(rgb)
            except Exception as e:
                logger.error(f"Leaf validation error, falling back to heuristic analysis: {e}")

        return self._validate_with_heuristic(rgb)

    def _validate_with_heuristic(self, rgb: np.ndarray) -> ValidationResult:
        logger.info("Using fallback validation method")
        try:
            return self.heuristic.classify(rgb)
        except Exception as e:
            logger.exception("Heuristic leaf analysis failed")
            return ValidationResult.unreadable(str(e))

    def assess_quality(self, image) -> QualityReport:
        return assess_quality(image, self.preprocessor)

    def model_info(self) -> dict:
        with self._lock:
            model = self._classifier.model if self._classifier is not None else None
            return {
                'state': self._state.value,
                'is_loaded': self._state is ModelState.READY,
                'load_attempts': self._load_attempts,
                'model_path': self.model_path,
                'model_type': type(model).__name__ if model is not None else None,
                'input_shape': list(self.preprocessor.input_shape),
            }

    def dispose(self):
        """Release the model and return to UNLOADED; in-flight loads are discarded"""
        with self._lock:
            classifier = self._classifier
            self._classifier = None
            self._generation += 1
            self._load_future = None
            self._failed_at = None
            self._state = ModelState.UNLOADED

        if classifier is not None:
            classifier.close()
            logger.info("Leaf validation model disposed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
