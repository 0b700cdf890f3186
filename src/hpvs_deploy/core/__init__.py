"""
hpvs_deploy.core - Foundation Layer
=====================================

Plain data and configuration shared by every other package:

    - config:      DeploymentConfig (what to deploy), DeploySettings (how)
    - enums:       Platform, SourceMode, PipelineStage
    - models:      SignedImageRef, RegistrationDocument, artifacts, sessions
    - exceptions:  The typed error taxonomy

Dependency Rule:
    core/ depends on nothing else in hpvs_deploy. integrations/ and
    pipeline/ depend on core/.
"""

from hpvs_deploy.core.config import (
    CloudTargetConfig,
    DeploymentConfig,
    DeploySettings,
    RegistryConfig,
    RetryPolicy,
    TimeoutConfig,
    TrustConfig,
    TrustDelegation,
    VendorKeyConfig,
    load_config,
)
from hpvs_deploy.core.enums import PipelineStage, Platform, SourceMode
from hpvs_deploy.core.exceptions import (
    AuthError,
    BuildError,
    ConfigurationError,
    CryptoError,
    DeployError,
    RequestRejectedError,
    TransientError,
)
from hpvs_deploy.core.models import (
    CloudSession,
    CommandResult,
    EncryptedRegistrationArtifact,
    ProvisionedInstance,
    RegistrationDocument,
    SignedImageRef,
)

__all__ = [
    # Config
    "DeploymentConfig",
    "DeploySettings",
    "RegistryConfig",
    "TrustConfig",
    "TrustDelegation",
    "VendorKeyConfig",
    "CloudTargetConfig",
    "TimeoutConfig",
    "RetryPolicy",
    "load_config",
    # Enums
    "Platform",
    "SourceMode",
    "PipelineStage",
    # Models
    "CommandResult",
    "SignedImageRef",
    "RegistrationDocument",
    "EncryptedRegistrationArtifact",
    "CloudSession",
    "ProvisionedInstance",
    # Exceptions
    "DeployError",
    "ConfigurationError",
    "AuthError",
    "BuildError",
    "CryptoError",
    "TransientError",
    "RequestRejectedError",
]
