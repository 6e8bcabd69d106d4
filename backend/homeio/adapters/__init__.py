from typing import List

from .base import BrightnessScale, DeviceDescriptor, StateProperties, VendorAdapter
from .govee import GoveeAdapter
from .hue import HueAdapter


def build_adapters(settings) -> List[VendorAdapter]:
    """Instantiate every configured vendor adapter"""
    timeout = settings.ADAPTER_TIMEOUT_SECONDS
    return [
        GoveeAdapter(
            settings.GOVEE_API_KEY,
            api_base=settings.GOVEE_API_BASE,
            models_254=settings.GOVEE_254_BRIGHTNESS_MODELS,
            timeout=timeout,
        ),
        HueAdapter(settings.HUE_BRIDGE_IP, settings.HUE_API_KEY, timeout=timeout),
    ]


__all__ = [
    "BrightnessScale",
    "DeviceDescriptor",
    "GoveeAdapter",
    "HueAdapter",
    "StateProperties",
    "VendorAdapter",
    "build_adapters",
]
