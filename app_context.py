# app_context.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional

from typing import Protocol
class LoggerLike(Protocol):
    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


@dataclass
class AppContext:
    """Lightweight container for state shared across the run."""
    logger: LoggerLike
    settings: Any
    config_path: str
    debug_mode: bool
    server_address: str
    sink_description: str
    traffic_log_path: Optional[str] = None
    transport: Optional[Any] = None
    sink: Optional[Any] = None
    engine: Optional[Any] = None
