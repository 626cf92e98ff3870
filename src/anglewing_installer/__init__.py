"""Self-installation and resource location for the Anglewing desktop shell."""

from anglewing_installer.bundle import DEFAULT_BUNDLE_SPEC, ResourceBundleSpec
from anglewing_installer.errors import (
    InstallerError,
    MaterializationError,
    PathResolutionError,
    RelocationError,
)
from anglewing_installer.materializer import MaterializationReport, ensure_resource_bundle
from anglewing_installer.orchestrator import (
    InstallationState,
    OrchestratorState,
    RelocationOrchestrator,
    StartupResult,
    run_startup,
)
from anglewing_installer.resolver import (
    CandidateLocation,
    CandidateOrigin,
    get_resource_directory,
    resolve_resource_directory,
)

__version__ = "0.3.0"

__all__ = [
    "DEFAULT_BUNDLE_SPEC",
    "CandidateLocation",
    "CandidateOrigin",
    "InstallationState",
    "InstallerError",
    "MaterializationError",
    "MaterializationReport",
    "OrchestratorState",
    "PathResolutionError",
    "RelocationError",
    "RelocationOrchestrator",
    "ResourceBundleSpec",
    "StartupResult",
    "__version__",
    "ensure_resource_bundle",
    "get_resource_directory",
    "resolve_resource_directory",
    "run_startup",
]
