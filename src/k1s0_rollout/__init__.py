"""k1s0 rollout library."""

from .client import FeatureFlagClient
from .engine import AssignmentEngine, cumulative_boundaries, uniform_biases
from .exceptions import (
    BiasFallbackWarning,
    NotConfiguredError,
    RolloutError,
    RolloutErrorCodes,
    UnknownFeatureError,
    ValidationError,
)
from .logger import configure_logging, new_logger
from .models import (
    Assignment,
    BiasFallback,
    ChangeKind,
    ConfigurationDocument,
    Feature,
    FeatureChange,
    FeatureKind,
    UpdateResult,
    Variation,
)
from .parser import parse, parse_file
from .providers import (
    ConfigurationProvider,
    FileConfigurationProvider,
    StaticConfigurationProvider,
    StaticSubjectIdProvider,
    StoredSubjectIdProvider,
    SubjectIdProvider,
)
from .registry import FeatureRegistry
from .rollout import RolloutController, UpdateObserver, diff_documents
from .settings import RolloutSettings, SettingsError, SettingsErrorCodes, load_settings
from .store import InMemoryKeyValueStore, KeyValueStore

__all__ = [
    "Assignment",
    "AssignmentEngine",
    "BiasFallback",
    "BiasFallbackWarning",
    "ChangeKind",
    "ConfigurationDocument",
    "ConfigurationProvider",
    "Feature",
    "FeatureChange",
    "FeatureFlagClient",
    "FeatureKind",
    "FeatureRegistry",
    "FileConfigurationProvider",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "NotConfiguredError",
    "RolloutController",
    "RolloutError",
    "RolloutErrorCodes",
    "RolloutSettings",
    "SettingsError",
    "SettingsErrorCodes",
    "StaticConfigurationProvider",
    "StaticSubjectIdProvider",
    "StoredSubjectIdProvider",
    "SubjectIdProvider",
    "UnknownFeatureError",
    "UpdateObserver",
    "UpdateResult",
    "ValidationError",
    "Variation",
    "configure_logging",
    "cumulative_boundaries",
    "diff_documents",
    "load_settings",
    "new_logger",
    "parse",
    "parse_file",
    "uniform_biases",
]
