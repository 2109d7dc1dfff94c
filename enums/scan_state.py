from enum import Enum


class ScanState(str, Enum):
    IDLE = "IDLE"            # No pending keystrokes
    BUFFERING = "BUFFERING"  # Collecting a burst of keystrokes
    SUBMIT = "SUBMIT"        # Terminator received, buffer ready to classify


class ScanSource(str, Enum):
    SCANNER = "scanner"  # Fast burst typical of a hardware wedge scanner
    MANUAL = "manual"    # Human typing speed
