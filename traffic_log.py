# traffic_log.py

from datetime import datetime

from loghandler import get_traffic_logger

traffic_logger = None

_header_written = False

def log_frame(frame, state_name: str, direction: str = "rx"):
    """
    Appends one row per valid frame to the traffic CSV using the traffic logger.
    Format: time,direction,type,sequence,flags,length,state

    No-op when the traffic log is disabled in settings.
    """

    global _header_written, traffic_logger
    if traffic_logger is None:
        traffic_logger = get_traffic_logger()

    if traffic_logger.disabled:
        return

    if not _header_written:
        traffic_logger.info("time,direction,type,sequence,flags,length,state")
        _header_written = True

    ts = datetime.now().isoformat(timespec="milliseconds")
    traffic_logger.info(
        f"{ts},{direction},{frame.type_name},{frame.sequence},{frame.flags},{len(frame.payload)},{state_name}"
    )
