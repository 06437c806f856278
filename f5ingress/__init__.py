"""f5ingress: derive F5 BIG-IP virtual servers from Kubernetes Ingresses."""

__version__ = "0.1.0"

# Lazy imports to avoid loading heavy dependencies for CLI usage
__all__ = [
    "derive_desired_state",
    "build_desired_state",
    "project_current_state",
    "build_current_state",
    "Snapshot",
    "VirtualServer",
    "EngineConfig",
]


def __getattr__(name):
    if name in ("derive_desired_state", "build_desired_state"):
        from . import desired
        return getattr(desired, name)
    elif name in ("project_current_state", "build_current_state"):
        from . import current
        return getattr(current, name)
    elif name in ("Snapshot", "VirtualServer", "EngineConfig"):
        from . import models
        return getattr(models, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
