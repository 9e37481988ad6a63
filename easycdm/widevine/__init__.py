from easycdm.widevine.cdm import KEY_SYSTEM, WidevineCdm
from easycdm.widevine.device import DeviceType, WidevineClient
from easycdm.widevine.pssh import PSSH

__all__ = ["KEY_SYSTEM", "PSSH", "DeviceType", "WidevineCdm", "WidevineClient"]
