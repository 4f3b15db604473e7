# app/analytics/autoencoder.py
from __future__ import annotations
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np
import structlog

from app.analytics.config import ProfilerConfig
from core.hooks.events import NormalizationStats
from core.storage.records import ModelState

log = structlog.get_logger()

# (fan_in, fan_out, activation): encoder 3→2→1, decoder 1→2→3
LAYERS: Tuple[Tuple[int, int, str], ...] = (
    (3, 2, "relu"),
    (2, 1, "relu"),
    (1, 2, "relu"),
    (2, 3, "linear"),
)
N_FEATURES = 3

# Adam constants
BETA1 = 0.9
BETA2 = 0.999
EPSILON = 1e-7

def expected_shapes() -> List[Tuple[int, ...]]:
    shapes: List[Tuple[int, ...]] = []
    for fan_in, fan_out, _act in LAYERS:
        shapes.append((fan_in, fan_out))
        shapes.append((fan_out,))
    return shapes

def _as_vector(vec) -> Optional[np.ndarray]:
    try:
        arr = np.asarray(vec, dtype=float)
    except (TypeError, ValueError):
        return None
    if arr.shape != (N_FEATURES,) or not np.all(np.isfinite(arr)):
        return None
    return arr

class AnomalyModel:
    """
    Tiny autoencoder trained online on normalized keystroke triples.
    - Reconstruction error of a vector is the anomaly signal.
    - Plain numpy forward/backward pass with Adam updates.
    - train() is non-reentrant: overlapping calls are dropped, not queued.
    """
    def __init__(self, config: Optional[ProfilerConfig] = None):
        self.cfg = config or ProfilerConfig()
        self._rng = np.random.default_rng(self.cfg.seed)
        self._params: Optional[List[np.ndarray]] = None
        self._m: List[np.ndarray] = []
        self._v: List[np.ndarray] = []
        self._step = 0

        self._samples: List[List[float]] = []
        self._restored_count = 0
        self.feature_stats: Optional[NormalizationStats] = None

        self._lock = threading.Lock()

    # ---- lifecycle ----

    def _create(self) -> None:
        params: List[np.ndarray] = []
        for fan_in, fan_out, _act in LAYERS:
            # Glorot uniform kernels, zero biases
            limit = np.sqrt(6.0 / (fan_in + fan_out))
            params.append(self._rng.uniform(-limit, limit, (fan_in, fan_out)))
            params.append(np.zeros(fan_out))
        self._params = params
        self._m = [np.zeros_like(p) for p in params]
        self._v = [np.zeros_like(p) for p in params]
        self._step = 0
        log.debug("model.create", layers=[f"{i}->{o}" for i, o, _ in LAYERS])

    @property
    def has_model(self) -> bool:
        return self._params is not None

    @property
    def sample_count(self) -> int:
        return self._restored_count + len(self._samples)

    @property
    def samples(self) -> List[List[float]]:
        return list(self._samples)

    def add_sample(self, vec: Sequence[float], stats: Optional[NormalizationStats] = None) -> bool:
        arr = _as_vector(vec)
        if arr is None:
            return False
        self._samples.append(arr.tolist())
        if stats is not None:
            self.feature_stats = stats
        return True

    def is_ready(self) -> bool:
        return self.has_model and self.sample_count >= self.cfg.min_ready_samples

    def reset(self) -> None:
        with self._lock:
            self._params = None
            self._m, self._v = [], []
            self._step = 0
            self._samples = []
            self._restored_count = 0
            self.feature_stats = None

    # ---- math ----

    def _forward(self, x: np.ndarray) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        assert self._params is not None
        acts = [x]
        pre = []
        a = x
        for li, (_fi, _fo, act) in enumerate(LAYERS):
            z = a @ self._params[2 * li] + self._params[2 * li + 1]
            pre.append(z)
            a = np.maximum(z, 0.0) if act == "relu" else z
            acts.append(a)
        return acts, pre

    def _backward(self, acts: List[np.ndarray], pre: List[np.ndarray], target: np.ndarray) -> List[np.ndarray]:
        assert self._params is not None
        out = acts[-1]
        # d/d(out) of mean((out - target)^2) over every element
        delta = 2.0 * (out - target) / out.size
        grads: List[np.ndarray] = [np.zeros(0)] * len(self._params)
        for li in range(len(LAYERS) - 1, -1, -1):
            if LAYERS[li][2] == "relu":
                delta = delta * (pre[li] > 0)
            grads[2 * li] = acts[li].T @ delta
            grads[2 * li + 1] = delta.sum(axis=0)
            if li > 0:
                delta = delta @ self._params[2 * li].T
        return grads

    def _adam_update(self, grads: List[np.ndarray]) -> None:
        assert self._params is not None
        self._step += 1
        lr = self.cfg.learning_rate
        c1 = 1.0 - BETA1 ** self._step
        c2 = 1.0 - BETA2 ** self._step
        for i, g in enumerate(grads):
            self._m[i] = BETA1 * self._m[i] + (1.0 - BETA1) * g
            self._v[i] = BETA2 * self._v[i] + (1.0 - BETA2) * (g * g)
            m_hat = self._m[i] / c1
            v_hat = self._v[i] / c2
            self._params[i] = self._params[i] - lr * m_hat / (np.sqrt(v_hat) + EPSILON)

    def _reconstruct(self, x: np.ndarray) -> np.ndarray:
        acts, _ = self._forward(x)
        return acts[-1]

    # ---- public ops ----

    def train(self, batch: Optional[Sequence[Sequence[float]]] = None, batch_size: Optional[int] = None) -> bool:
        """
        Fit the autoencoder on `batch` (defaults to every collected sample),
        input == target. Returns False when skipped (too few samples or busy).
        """
        bs = batch_size or self.cfg.batch_size
        data = self._samples if batch is None else list(batch)
        if len(data) < bs:
            log.debug("model.train.deferred", samples=len(data), needed=bs)
            return False

        if not self._lock.acquire(blocking=False):
            log.debug("model.train.skipped", reason="busy")
            return False
        try:
            try:
                x = np.asarray(data, dtype=float)
            except (TypeError, ValueError) as e:
                log.warning("model.train.bad_batch", err=str(e))
                return False
            if x.ndim != 2 or x.shape[1] != N_FEATURES or not np.all(np.isfinite(x)):
                log.warning("model.train.bad_batch", shape=list(x.shape))
                return False
            if self._params is None:
                self._create()

            mb = min(bs, len(x))
            for _epoch in range(self.cfg.epochs):
                order = self._rng.permutation(len(x))
                for start in range(0, len(x), mb):
                    xb = x[order[start:start + mb]]
                    acts, pre = self._forward(xb)
                    self._adam_update(self._backward(acts, pre, xb))
            loss = float(np.mean((self._reconstruct(x) - x) ** 2))
            log.info("model.train.done", samples=len(x), epochs=self.cfg.epochs, loss=round(loss, 6))
            return True
        finally:
            self._lock.release()

    def reconstruction_error(self, vec: Sequence[float]) -> Optional[float]:
        arr = _as_vector(vec)
        if arr is None:
            return None
        with self._lock:
            if self._params is None:
                return None
            rec = self._reconstruct(arr.reshape(1, -1))
        return float(np.mean((rec - arr) ** 2))

    def score(self, vec: Sequence[float]) -> float:
        err = self.reconstruction_error(vec)
        if err is None:
            return self.cfg.default_score
        return float(min(max(err * self.cfg.score_scale, 0.0), 1.0))

    def export_state(self) -> Optional[ModelState]:
        with self._lock:
            if self._params is None:
                return None
            weights = [p.tolist() for p in self._params]
        return ModelState(
            weights=weights,
            feature_stats=self.feature_stats or NormalizationStats(),
            training_sample_count=self.sample_count,
        )

    def import_state(self, state: Optional[ModelState]) -> bool:
        if state is None or not state.weights:
            return False
        shapes = expected_shapes()
        if len(state.weights) != len(shapes):
            log.warning("model.import.mismatch", got=len(state.weights), want=len(shapes))
            return False
        try:
            params = [np.asarray(w, dtype=float) for w in state.weights]
        except (TypeError, ValueError) as e:
            log.warning("model.import.error", err=str(e))
            return False
        for p, shape in zip(params, shapes):
            if p.shape != shape or not np.all(np.isfinite(p)):
                log.warning("model.import.mismatch", got=list(p.shape), want=list(shape))
                return False

        with self._lock:
            self._params = params
            self._m = [np.zeros_like(p) for p in params]
            self._v = [np.zeros_like(p) for p in params]
            self._step = 0
            self.feature_stats = state.feature_stats
            self._restored_count = max(0, int(state.training_sample_count))
            self._samples = []
        log.info("model.import.ok", samples=self._restored_count)
        return True
