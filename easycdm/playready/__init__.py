from easycdm.playready.bcert import Certificate, CertificateChain
from easycdm.playready.cdm import KEY_SYSTEM, PlayReadyCdm
from easycdm.playready.device import Device
from easycdm.playready.pssh import PSSH

__all__ = [
    "KEY_SYSTEM",
    "PSSH",
    "Certificate",
    "CertificateChain",
    "Device",
    "PlayReadyCdm",
]
