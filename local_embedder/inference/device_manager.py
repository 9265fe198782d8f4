"""
OpenVINO Device Manager
========================
Detects OpenVINO devices and resolves the device string the inference engine
compiles for.

Devices:
    CPU   -- always available, baseline
    GPU   -- Intel integrated / discrete GPU
    NPU   -- Neural Processing Unit (Meteor Lake+)

Virtual devices:
    AUTO  -- OpenVINO picks the best device; starts on CPU while the
             accelerator compiles in the background
    MULTI -- "MULTI:CPU,GPU" spreads inference requests across devices

Any preferred device that is not present falls back to CPU.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DeviceManager:
    """
    OpenVINO device detection and selection.

    Usage::

        dm = DeviceManager()
        dm.list_devices()          # ['CPU', 'GPU']
        dm.select("NPU")           # 'CPU' (fallback)

    A pre-built ``openvino.Core`` can be passed in; otherwise one is
    created on first use.
    """

    def __init__(self, core: Optional[Any] = None):
        self._core = core
        self._devices: Optional[List[str]] = None

    @property
    def core(self):
        """The underlying openvino.Core, created lazily."""
        if self._core is None:
            import openvino as ov

            self._core = ov.Core()
        return self._core

    def list_devices(self) -> List[str]:
        """Available device strings, e.g. ['CPU', 'GPU']."""
        if self._devices is None:
            try:
                self._devices = list(self.core.available_devices)
            except RuntimeError as exc:
                logger.error("Failed to query OpenVINO devices: %s", exc)
                self._devices = []
            logger.info("OpenVINO devices: %s", self._devices)
        return list(self._devices)

    def select(self, preferred: str = "AUTO") -> str:
        """
        Resolve ``preferred`` to a device string for ``compile_model``.

        Args:
            preferred : "CPU", "GPU", "NPU", "AUTO" or "MULTI:DEV1,DEV2"

        Returns:
            The device string to compile for.
        """
        preferred = (preferred or "AUTO").strip()
        upper = preferred.upper()

        if upper == "AUTO":
            logger.info("Selected device: AUTO (available: %s)", self.list_devices())
            return "AUTO"

        devices = self.list_devices()

        if upper.startswith("MULTI:"):
            wanted = [d.strip() for d in preferred.split(":", 1)[1].split(",")]
            valid = [d for d in wanted if d in devices]
            if len(valid) >= 2:
                multi = "MULTI:" + ",".join(valid)
                logger.info("Selected device: %s", multi)
                return multi
            if valid:
                logger.warning(
                    "MULTI requested but only '%s' available, using single device",
                    valid[0],
                )
                return valid[0]
            logger.warning("No MULTI sub-devices available, falling back to CPU")
            return "CPU"

        if upper in devices:
            logger.info("Selected device: %s", upper)
            return upper

        logger.warning(
            "Preferred device '%s' not available (have: %s). Falling back to CPU.",
            preferred,
            devices,
        )
        return "CPU"

    def device_summary(self) -> List[Dict[str, str]]:
        """One dict per device with its full name, for the ``devices`` command."""
        summaries = []
        for device in self.list_devices():
            try:
                name = str(self.core.get_property(device, "FULL_DEVICE_NAME"))
            except RuntimeError:
                name = "Unknown"
            summaries.append({"device": device, "name": name})
        return summaries
