"""Exceptions raised by the fractal renderer."""


class ConfigurationError(ValueError):
    """A render configuration that cannot produce a meaningful image."""


class DegenerateHistogramError(ArithmeticError):
    """No sample escaped, so the escape histogram cannot be normalized."""
