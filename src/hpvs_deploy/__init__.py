"""
hpvs-deploy - Secure FHE Toolkit Deployment to Hyper Protect
==============================================================

Signs an FHE Toolkit container image with Docker Content Trust, seals a
registration definition for it with GPG, and provisions an IBM Cloud Hyper
Protect Virtual Server that runs it:

    TrustSigner  →  RegistrationBuilder  →  CloudProvisioner
    (tag, login,    (write, encrypt,         (token, resource group,
     sign, push)     sign)                    create instance)

Layers (top to bottom):
    1. Pipeline     - DeploymentOrchestrator and the three stage components
    2. Core         - Config, enums, models, exceptions
    3. Integrations - Container runtime, keyring, cloud API (real + mock)

Quick Start:
    >>> from hpvs_deploy import DeploymentOrchestrator, load_config
    >>> config = load_config("DeployToHPVS.yaml", platform="fedora")
    >>> instance = await DeploymentOrchestrator(config).run()
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Package-Level Exports
# =============================================================================
# For specific components, import from submodules directly:
#   from hpvs_deploy.core.config import DeploySettings
#   from hpvs_deploy.integrations.runtime import MockContainerRuntime
# =============================================================================
from hpvs_deploy.core.config import load_config
from hpvs_deploy.pipeline.orchestrator import DeploymentOrchestrator

__all__ = ["DeploymentOrchestrator", "load_config", "__version__"]
