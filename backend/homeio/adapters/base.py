"""
Base Vendor Adapter

Abstract base class for all vendor integrations (cloud APIs, local bridges).
Adapters fetch raw device lists and state from one vendor and normalise them
to the canonical device shape.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..commands.models import BRIGHTNESS_MAX, BRIGHTNESS_MIN, PowerState
from ..core.exceptions import AdapterDataInvalid, AdapterUnavailable


@dataclass
class DeviceDescriptor:
    """One device as listed by a vendor"""
    device: str
    brand: str
    model: Optional[str] = None
    device_name: Optional[str] = None
    vendor_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StateProperties:
    """Normalised state; None means the vendor did not report the property"""
    power_state: Optional[PowerState] = None
    brightness: Optional[int] = None  # Canonical 0-100
    online: Optional[bool] = None


class BrightnessScale:
    """
    Maps a vendor brightness range onto the canonical 0-100 scale.

    Rounding in both directions keeps to_canonical(to_vendor(x)) == x for
    every canonical x, so a converged device never shows a false divergence.
    """

    def __init__(self, maximum: int, minimum: int = 0):
        self.maximum = maximum
        self.minimum = minimum

    def to_canonical(self, raw: float) -> int:
        value = round(float(raw) * BRIGHTNESS_MAX / self.maximum)
        return max(BRIGHTNESS_MIN, min(BRIGHTNESS_MAX, value))

    def to_vendor(self, canonical: int) -> int:
        value = round(canonical * self.maximum / BRIGHTNESS_MAX)
        return max(self.minimum, min(self.maximum, value))

    def __repr__(self):
        return f"BrightnessScale({self.minimum}-{self.maximum})"


PERCENT_SCALE = BrightnessScale(100)


class VendorAdapter(ABC):
    """
    Base class for all vendor adapters

    Each vendor (Govee, Hue, ...) extends this class. Calls raise
    AdapterUnavailable / AdapterDataInvalid instead of returning error codes;
    the reconciliation engine contains those errors per vendor or per device.
    """

    name: str = "vendor"

    # Skipped by "quick" reconciliation cycles (slow or rate-limited vendors)
    skip_on_quick: bool = False

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.timeout = timeout
        self._transport = transport
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    @abstractmethod
    async def list_devices(self) -> List[DeviceDescriptor]:
        """
        List all devices known to the vendor

        Raises:
            AdapterUnavailable: vendor unreachable or credentials rejected
            AdapterDataInvalid: malformed response
        """
        pass

    @abstractmethod
    async def fetch_state(self, descriptor: DeviceDescriptor) -> StateProperties:
        """
        Fetch and normalise the current state of one device

        Raises:
            AdapterUnavailable: vendor unreachable or credentials rejected
            AdapterDataInvalid: malformed response
        """
        pass

    def brightness_scale_for(self, descriptor: DeviceDescriptor) -> BrightnessScale:
        """Brightness range the vendor uses for this device"""
        return PERCENT_SCALE

    def apply_normalized_update(
        self,
        descriptor: DeviceDescriptor,
        state: Optional[StateProperties]
    ) -> Dict[str, Any]:
        """
        Column values the store writes for a polled device.

        Descriptor fields are always present; observed state only for
        properties the vendor reported.
        """
        update: Dict[str, Any] = {
            "brand": descriptor.brand,
            "model": descriptor.model,
            "device_name": descriptor.device_name,
            "vendor_data": descriptor.vendor_data or None,
        }
        if state is None:
            return update

        if state.power_state is not None:
            update["power_state"] = state.power_state.value
        if state.brightness is not None:
            update["brightness"] = state.brightness
        if state.online is not None:
            update["online"] = state.online
        return update

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _get_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """GET a JSON document, mapping transport failures to adapter errors"""
        try:
            async with self._client() as client:
                response = await client.get(url, headers=headers, params=params)
        except httpx.TimeoutException:
            raise AdapterUnavailable(self.name, f"Timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            raise AdapterUnavailable(self.name, f"Request failed: {e}")

        if response.status_code != 200:
            raise AdapterUnavailable(self.name, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError:
            raise AdapterDataInvalid(self.name, "Response is not valid JSON")
