"""
Inference subpackage -- running the network.

Modules:
    base             -- InferenceEngine protocol consumed by the pipeline
    device_manager   -- detect and select OpenVINO devices
    openvino_engine  -- OpenVINO-backed InferenceEngine
"""

from local_embedder.inference.base import InferenceEngine
from local_embedder.inference.device_manager import DeviceManager
from local_embedder.inference.openvino_engine import OpenVINOInferenceEngine

__all__ = ["DeviceManager", "InferenceEngine", "OpenVINOInferenceEngine"]
