"""
Admission components.

Origin validation and the controller that gates new connections.
"""

from socket_bridge.components.admission.controller import AdmissionController, AdmissionResult
from socket_bridge.components.admission.origins import origin_matches, validate_websocket_origin

__all__ = [
    "AdmissionController",
    "AdmissionResult",
    "origin_matches",
    "validate_websocket_origin",
]
