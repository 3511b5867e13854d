"""
Channel hub: owns the specialised channels of a session.

Every sample is routed to every registered channel.  A channel that raises
is isolated: it reports its last good value at quality 0 for that sample
and the fault is logged.  Other channels never see the failure.

Channels share no mutable state, so the hub can fan a sample out over a
:class:`concurrent.futures.Executor`; results are still collected for the
whole tick before :meth:`ChannelHub.process` returns.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Dict, Iterator, List, Optional, Union

from .channels import (
    BloodPressureChannel,
    CardiacChannel,
    GlucoseChannel,
    HydrationChannel,
    LipidsChannel,
    SpecializedChannel,
    SpO2Channel,
)
from .config import MonitorConfig
from .types import ChannelFeedback, ChannelOutput, Sample, VitalSignType

logger = logging.getLogger(__name__)

ChannelKey = Union[VitalSignType, str]


class ChannelHub:
    """
    Routes samples to channels and feedback back to the named channel.

    Parameters
    ----------
    enable_feedback:
        When *False* feedback messages are logged and dropped.
    executor:
        Optional executor used to run the channels of one tick in
        parallel.  The hub does not own or shut it down.
    """

    def __init__(self, enable_feedback: bool = True, executor: Optional[Executor] = None) -> None:
        self.enable_feedback = enable_feedback
        self._executor = executor
        self._channels: Dict[VitalSignType, SpecializedChannel] = {}
        self._outputs: Dict[VitalSignType, ChannelOutput] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, channel_type: ChannelKey, channel: SpecializedChannel) -> None:
        key = VitalSignType(channel_type)
        if key in self._channels:
            logger.info("Replacing channel %s", key.value)
        self._channels[key] = channel

    def get(self, channel_type: ChannelKey) -> Optional[SpecializedChannel]:
        try:
            return self._channels.get(VitalSignType(channel_type))
        except ValueError:
            return None

    @property
    def types(self) -> List[VitalSignType]:
        return list(self._channels)

    def __contains__(self, channel_type: object) -> bool:
        return self.get(channel_type) is not None  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[SpecializedChannel]:
        return iter(self._channels.values())

    def __len__(self) -> int:
        return len(self._channels)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, sample: Sample) -> Dict[VitalSignType, float]:
        """Feed ``sample.filtered_value`` to every channel."""
        return self.process_value(sample.filtered_value, sample.timestamp)

    def process_value(self, value: float, timestamp: float) -> Dict[VitalSignType, float]:
        if self._executor is not None and len(self._channels) > 1:
            futures = {
                key: self._executor.submit(self._run_channel, key, channel, value, timestamp)
                for key, channel in self._channels.items()
            }
            outputs = {key: future.result() for key, future in futures.items()}
        else:
            outputs = {
                key: self._run_channel(key, channel, value, timestamp)
                for key, channel in self._channels.items()
            }
        self._outputs = outputs
        return {key: out.value for key, out in outputs.items()}

    @property
    def outputs(self) -> Dict[VitalSignType, ChannelOutput]:
        """Value and quality of every channel for the last processed sample."""
        return dict(self._outputs)

    def qualities(self) -> Dict[VitalSignType, float]:
        return {key: out.quality for key, out in self._outputs.items()}

    # ------------------------------------------------------------------
    # Feedback and reset
    # ------------------------------------------------------------------

    def apply_feedback(self, feedback: ChannelFeedback) -> bool:
        """Route *feedback* to its channel.  Returns whether it was applied."""
        if not self.enable_feedback:
            logger.warning("Feedback disabled, dropping feedback for %s", feedback.channel_id)
            return False
        channel = self.get(feedback.channel_id)
        if channel is None:
            logger.warning("No channel found for feedback id %r", feedback.channel_id)
            return False
        channel.apply_feedback(feedback)
        return True

    def reset(self) -> None:
        for channel in self._channels.values():
            channel.reset()
        self._outputs = {}
        logger.info("All channels reset")

    def full_reset(self) -> None:
        for channel in self._channels.values():
            channel.full_reset()
        self._outputs = {}
        logger.info("All channels fully reset")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _run_channel(
        key: VitalSignType,
        channel: SpecializedChannel,
        value: float,
        timestamp: float,
    ) -> ChannelOutput:
        try:
            result = channel.process_value(value, timestamp)
            return ChannelOutput(value=result, quality=channel.quality)
        except Exception as exc:
            logger.exception("Channel %s failed at t=%.0f ms, holding last value",
                             key.value, timestamp)
            return ChannelOutput(
                value=channel.hold_last_value(),
                quality=0.0,
                faulted=True,
                error=f"{type(exc).__name__}: {exc}",
            )


def create_default_hub(
    config: Optional[MonitorConfig] = None,
    executor: Optional[Executor] = None,
) -> ChannelHub:
    """A hub with all six measurement channels registered."""
    config = config or MonitorConfig()
    hub = ChannelHub(enable_feedback=config.enable_feedback, executor=executor)
    hub.register(VitalSignType.CARDIAC, CardiacChannel(config.cardiac))
    hub.register(VitalSignType.SPO2, SpO2Channel(config.spo2))
    hub.register(VitalSignType.BLOOD_PRESSURE, BloodPressureChannel(config.blood_pressure))
    hub.register(VitalSignType.GLUCOSE, GlucoseChannel(config.glucose))
    hub.register(VitalSignType.LIPIDS, LipidsChannel(config.lipids))
    hub.register(VitalSignType.HYDRATION, HydrationChannel(config.hydration))
    return hub
