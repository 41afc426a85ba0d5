"""Exception hierarchy for the stock analyzer."""


class AnalyzerError(Exception):
    """Base exception for all analyzer-specific errors."""


class ConfigError(AnalyzerError, ValueError):
    """Raised when analysis configuration is invalid."""


class DataValidationError(AnalyzerError, ValueError):
    """Raised when input data is missing required columns or is unusable."""


class MalformedInputError(DataValidationError):
    """Raised when a ticker's dates are non-increasing or duplicated."""


class ModelFitError(AnalyzerError):
    """Raised when a volatility or forecasting model fails to fit."""


class InvalidDistributionParameterError(AnalyzerError, ValueError):
    """Raised when a fitted distribution parameter is outside its valid range."""


class DegenerateWeightError(AnalyzerError):
    """Raised when raw weight scores cannot be normalized into a valid portfolio."""


class InfeasibleConstraintError(AnalyzerError):
    """Raised when portfolio constraints admit no solution."""
