"""Client-side payroll run tracker."""

__version__ = "0.1.0"
