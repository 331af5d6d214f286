"""
Central warning filter configuration for engine runtime processes.
"""

import warnings


def configure_warning_filters() -> None:
    """Silence known noisy library warnings."""
    warnings.filterwarnings(
        "ignore",
        message=r"builtin type (SwigPyPacked|SwigPyObject|swigvarlink) has no __module__ attribute",
        category=DeprecationWarning,
    )
