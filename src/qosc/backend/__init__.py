"""
Simulator backends served by qosc.

Two backends ship with the package, both built on stim:

- `gk`: Gottesman-Knill stabilizer simulation of physical qubits
- `steane`: logical qubits encoded in the [[7,1,3]] Steane code

A backend is chosen once, when the server starts:
```python
from qosc.backend import get_backend
backend = get_backend("steane", seed=123)
```

See Also
--------
qosc.types.protocols : The operations a backend provides
"""

from __future__ import annotations

from typing import Optional, Type

from .backend import (
    GATE_ALIASES,
    GATE_ARITY,
    Backend,
    RegisterHandle,
    canonical_gate,
    validate_backend,
)
from .stabilizer import GKBackend
from .steane import SteaneBackend

BACKENDS: dict[str, Type[Backend]] = {
    GKBackend.name: GKBackend,
    SteaneBackend.name: SteaneBackend,
}


def get_backend(
    name: str, seed: Optional[int] = None, error_rate: float = 0.0
) -> Backend:
    """Instantiate a backend by name.

    Raises
    ------
    ValueError
        If the name is unknown, or noise is requested from a noiseless backend.
    """
    try:
        backend_type = BACKENDS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Backend {name} not found, available: {', '.join(BACKENDS)}"
        ) from None
    if error_rate:
        if backend_type is not SteaneBackend:
            raise ValueError(f"Backend {name} does not model physical errors.")
        return backend_type(seed=seed, error_rate=error_rate)
    return backend_type(seed=seed)


__all__ = [
    "BACKENDS",
    "Backend",
    "GATE_ALIASES",
    "GATE_ARITY",
    "GKBackend",
    "RegisterHandle",
    "SteaneBackend",
    "canonical_gate",
    "get_backend",
    "validate_backend",
]
