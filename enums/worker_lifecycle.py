from enum import Enum


class WorkerLifecycle(str, Enum):
    STOPPED = "STOPPED"      # Not started or already closed
    INSTALLED = "INSTALLED"  # Caches opened, waiting for activation
    ACTIVE = "ACTIVE"        # Intercepting requests
