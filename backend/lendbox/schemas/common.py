"""The JSON envelope every endpoint answers with: {"success", "message", "data"}."""
from typing import Any, Dict, Optional


def envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
