"""
hpvs_deploy.pipeline - Deployment Pipeline Components
=======================================================

    TrustSigner          - tag, log in, delegate, sign and push the image
    RegistrationBuilder  - build, encrypt and sign the registration definition
    CloudProvisioner     - token, resource group, create the instance
    DeploymentOrchestrator - runs the three in order and cleans up
"""

from hpvs_deploy.pipeline.orchestrator import DeploymentOrchestrator
from hpvs_deploy.pipeline.provisioner import CloudProvisioner
from hpvs_deploy.pipeline.registration import (
    FileRecipientKeySource,
    HTTPRecipientKeySource,
    RecipientKeySource,
    RegistrationBuilder,
    create_recipient_key_source,
)
from hpvs_deploy.pipeline.retry import call_with_retry
from hpvs_deploy.pipeline.trust_signer import TrustSigner

__all__ = [
    "DeploymentOrchestrator",
    "TrustSigner",
    "RegistrationBuilder",
    "RecipientKeySource",
    "FileRecipientKeySource",
    "HTTPRecipientKeySource",
    "create_recipient_key_source",
    "CloudProvisioner",
    "call_with_retry",
]
