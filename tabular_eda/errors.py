"""Error taxonomy shared by every pipeline stage."""

from sklearn.exceptions import ConvergenceWarning as _SklearnConvergenceWarning


class TabularEDAError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(TabularEDAError, ValueError):
    """Invalid parameters: k range, train fraction, classifier kind, band config."""


class DataQualityError(TabularEDAError, ValueError):
    """Missing values or out-of-vocabulary categories left after cleaning."""


class SchemaMismatchError(TabularEDAError, ValueError):
    """Predict-time columns do not match the schema a model was trained on."""


class ConvergenceWarning(_SklearnConvergenceWarning):
    """An iterative fit hit its iteration cap before stabilising."""


class PipelineError(TabularEDAError):
    """Wraps an exception escaping one of the named pipeline stages."""

    def __init__(self, stage, cause):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}")
