# Common utilities
from easycdm.common.crypto import CryptoUtils as CryptoUtils
from easycdm.common.logging_utils import setup_logger as setup_logger
from easycdm.common.mixins import Configurable as Configurable

__all__ = ["Configurable", "CryptoUtils", "setup_logger"]
