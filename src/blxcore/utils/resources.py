"""
Runtime resources: the shared random generator and optional numba compilation of the numeric kernels.
"""
from functools import cached_property, lru_cache
from importlib import import_module
from pathlib import Path
from typing import Callable

from numpy.random import default_rng, Generator


# Classes --------------------------------------------------------------------------------------------------------------
class Resources:
    """
    Global runtime resources.

    Args:
        *optional_packages: Packages that are used when importable (e.g. ``'numba'``).

    Attributes:
        package (str): The package name.
        optional (frozenset): The optional packages that are importable.

    Examples:
        >>> RESOURCES.rng.integers(1, 100, size=3)
        array([...])
        >>> RESOURCES.compiles_kernels
        True
    """
    def __init__(self, *optional_packages: str):
        self.package = Path(__file__).parent.parent.name
        self.optional = frozenset(filter(self.has_module, optional_packages))

    def __repr__(self): return f"Resources({self.package}, optional={sorted(self.optional)})"

    @cached_property
    def rng(self) -> Generator:
        """The shared numpy random generator (random test layouts, sampling)."""
        return default_rng()

    @property
    def compiles_kernels(self) -> bool:
        """Whether ``jit`` compiles with numba or leaves kernels as plain Python."""
        return 'numba' in self.optional

    @staticmethod
    @lru_cache(maxsize=None)
    def has_module(module_name: str) -> bool:
        """Checks if a python package can be imported."""
        try:
            import_module(module_name)
            return True
        except ImportError: return False


# Decorators -----------------------------------------------------------------------------------------------------------
def jit(signature_or_function=None, **options) -> Callable:
    """
    Compiles a numeric kernel with ``numba.jit`` if numba is available.

    Without numba the kernel is returned unchanged and the options are ignored, so
    kernels must also be valid (if slower) plain Python over numpy arrays.

    Examples:
        >>> @jit
        ... def kernel(a): ...

        >>> @jit(nopython=True, cache=True, nogil=True)
        ... def kernel(a): ...
    """
    if not RESOURCES.compiles_kernels:
        if callable(signature_or_function): return signature_or_function
        return lambda func: func
    from numba import jit as numba_jit
    if callable(signature_or_function): return numba_jit(signature_or_function)
    return numba_jit(signature_or_function, **options)


# Constants ------------------------------------------------------------------------------------------------------------
RESOURCES = Resources('numba')
