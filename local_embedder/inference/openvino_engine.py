"""
OpenVINO Inference Engine
==========================
Runs a BERT-style embedding model (ONNX or OpenVINO IR) and returns the
last hidden state: one vector per token.

Compilation steps:
    1. Core.read_model()    -- parse model.onnx (or model.xml + model.bin)
    2. Core.compile_model() -- optimise the graph for the target device

Input tensors (names as exported by optimum / sentence-transformers):
    input_ids       (batch, seq_len) int64
    attention_mask  (batch, seq_len) int64
    token_type_ids  (batch, seq_len) int64, all zeros -- only when the model
                    declares it

Output 0 is (batch, seq_len, hidden_size).

Threading:
    A compiled model can be shared between threads but an infer request
    cannot.  Each thread lazily creates its own request, so ``infer`` may be
    called from the pipeline's worker pool.
"""

import logging
import threading
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from local_embedder.exceptions import InferenceFailedError, ModelNotFoundError
from local_embedder.inference.device_manager import DeviceManager

logger = logging.getLogger(__name__)

INPUT_IDS = "input_ids"
ATTENTION_MASK = "attention_mask"
TOKEN_TYPE_IDS = "token_type_ids"


class OpenVINOInferenceEngine:
    """
    Wraps an ``openvino.CompiledModel``.

    Usage:
        engine = OpenVINOInferenceEngine.create("model.onnx", device="CPU")
        token_vectors = engine.infer(ids, mask)   # (seq_len, hidden_size)
    """

    def __init__(self, compiled_model: Any, device: str = "CPU"):
        self._compiled_model = compiled_model
        self.device = device
        self._local = threading.local()

        self._input_names = [inp.get_any_name() for inp in compiled_model.inputs]
        self._has_token_type_ids = TOKEN_TYPE_IDS in self._input_names
        self._hidden_size = self._detect_hidden_size()

        logger.info(
            "OpenVINO engine ready on %s  inputs=%s  hidden_size=%d",
            device,
            self._input_names,
            self._hidden_size,
        )

    @classmethod
    def create(
        cls,
        model_path: Union[str, Path],
        device: str = "AUTO",
        device_manager: Optional[DeviceManager] = None,
    ) -> "OpenVINOInferenceEngine":
        """
        Read and compile a model file.

        Raises:
            ModelNotFoundError   : if ``model_path`` does not exist
            InferenceFailedError : if OpenVINO cannot read or compile it
        """
        path = Path(model_path)
        if not path.is_file():
            raise ModelNotFoundError(f"Model file not found: {path}", path.stem)

        manager = device_manager or DeviceManager()
        selected = manager.select(device)
        try:
            model = manager.core.read_model(model=str(path))
            compiled = manager.core.compile_model(model=model, device_name=selected)
        except RuntimeError as exc:
            raise InferenceFailedError(
                f"Failed to compile {path} on {selected}: {exc}"
            ) from exc
        return cls(compiled, device=selected)

    @property
    def hidden_size(self) -> int:
        return self._hidden_size

    def _detect_hidden_size(self) -> int:
        shape = self._compiled_model.output(0).get_partial_shape()
        last = shape[shape.rank.get_length() - 1]
        if last.is_static:
            return int(last.get_length())
        # dynamic hidden dim: ask the model
        dummy = np.zeros((1, 2), dtype=np.int64)
        return int(self._run(dummy, np.ones((1, 2), dtype=np.int64)).shape[-1])

    def _request(self):
        request = getattr(self._local, "request", None)
        if request is None:
            request = self._compiled_model.create_infer_request()
            self._local.request = request
        return request

    def _feed(self, token_ids: np.ndarray, attention_mask: np.ndarray) -> dict:
        by_name = {
            INPUT_IDS: token_ids,
            ATTENTION_MASK: attention_mask,
            TOKEN_TYPE_IDS: np.zeros_like(token_ids),
        }
        if INPUT_IDS in self._input_names and ATTENTION_MASK in self._input_names:
            return {name: by_name[name] for name in self._input_names if name in by_name}
        # unusual export names: fall back to positional order
        feed = {self._input_names[0]: token_ids, self._input_names[1]: attention_mask}
        if len(self._input_names) > 2:
            feed[self._input_names[2]] = by_name[TOKEN_TYPE_IDS]
        return feed

    def _run(self, token_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        request = self._request()
        request.infer(self._feed(token_ids, attention_mask))
        # the request reuses its output memory on the next call
        return np.array(request.get_output_tensor(0).data, dtype=np.float32, copy=True)

    def infer(self, token_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        """
        Run one sequence.

        Args:
            token_ids      : (seq_len,) int64
            attention_mask : (seq_len,) int64

        Returns:
            (seq_len, hidden_size) float32 token vectors.
        """
        ids = np.asarray(token_ids, dtype=np.int64)[np.newaxis, :]
        mask = np.asarray(attention_mask, dtype=np.int64)[np.newaxis, :]
        return self._run(ids, mask)[0]

    def infer_batch(
        self,
        token_ids: Sequence[np.ndarray],
        attention_masks: Sequence[np.ndarray],
    ) -> List[np.ndarray]:
        """
        Run B equal-length sequences in one forward pass.

        ``EmbeddingModel.embed_batch`` does not use this; it calls ``infer``
        once per item from its worker threads.
        """
        if len(token_ids) == 0:
            return []
        ids = np.stack([np.asarray(t, dtype=np.int64) for t in token_ids])
        masks = np.stack([np.asarray(m, dtype=np.int64) for m in attention_masks])
        output = self._run(ids, masks)
        return [output[i] for i in range(output.shape[0])]

    def close(self) -> None:
        self._local = threading.local()
        self._compiled_model = None
