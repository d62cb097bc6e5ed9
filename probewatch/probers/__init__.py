from .base import Prober
from .custom import register_custom_executor
from .factory import ProbeDispatcher, UnsupportedCheckType, probe, register_prober

__all__ = [
    "Prober",
    "ProbeDispatcher",
    "UnsupportedCheckType",
    "probe",
    "register_prober",
    "register_custom_executor",
]
