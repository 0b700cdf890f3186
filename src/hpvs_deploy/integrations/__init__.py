"""
hpvs_deploy.integrations - External Collaborator Layer
========================================================

Adapters for everything the pipeline does not do itself. Each collaborator
is an abstract interface with a production backend and a mock, selected by
DeploySettings:

    runtime/  - Container runtime (docker CLI, mock)
    keyring/  - OpenPGP keyring (gpg CLI, mock)
    cloud/    - Cloud provisioning API (IBM Cloud over httpx, mock)
"""

__all__: list[str] = []
