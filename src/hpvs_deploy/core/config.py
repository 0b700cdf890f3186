"""
hpvs_deploy.core.config - Configuration Management
====================================================

Two kinds of configuration live here:

    1. DeploymentConfig - WHAT to deploy. An immutable value object resolved
       once per run from a config file plus CLI flags: platform, source mode,
       registry credentials, trust passphrases, vendor keys, cloud target.

    2. DeploySettings - HOW this installation talks to the outside world.
       A pydantic-settings object loaded from HPVS_DEPLOY_* environment
       variables: backends, endpoints, timeouts, retry policy, the source of
       the registration recipient key.

Configuration File Formats:
    load_config() reads either format:

    YAML (nested keys mirror DeploymentConfig):
        registry:
          namespace: acme
          username: acme-bot
          password: s3cret
        trust:
          root_passphrase: ...
        vendor_key:
          name: acme-vendor
          public_key_file: keys/vendor.pub
          ...

    Legacy shell-style KEY=value (the DeployToHPVS.conf format):
        dockerUser=acme-bot
        dockerPW='s3cret'
        namespace=acme
        gpgVendorKeyName=acme-vendor

Default Resolution:
    Every optional field has one explicit resolve_*() method that applies
    the documented default. Nothing downstream checks "was this set?".

Environment Variables (DeploySettings):
    HPVS_DEPLOY_LOG_LEVEL=DEBUG
    HPVS_DEPLOY_CLOUD_BACKEND=mock
    HPVS_DEPLOY_TIMEOUTS__PUSH=900
    HPVS_DEPLOY_RETRY__MAX_RETRIES=3
    HPVS_DEPLOY_REGISTRATION__RECIPIENT_KEY_URL=https://...
    HPVS_DEPLOY_REGISTRATION__RECIPIENT_KEY_FILE=/etc/hpvs/recipient.pub

Environment Variables (DeploymentConfig overrides, applied over the file):
    HPVS_DEPLOY_REGISTRY__PASSWORD=...
    HPVS_DEPLOY_CLOUD__API_KEY=...
    HPVS_DEPLOY_IMAGE_TAG=v1.3.1
"""

from __future__ import annotations

import os
import random
import shlex
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings

from hpvs_deploy.core.enums import Platform, SourceMode
from hpvs_deploy.core.exceptions import ConfigurationError


# =============================================================================
# Documented Defaults
# =============================================================================
DEFAULT_CONFIG_FILE = "DeployToHPVS.yaml"
DEFAULT_REGISTRY_URL = "docker.io"
DEFAULT_TRUST_SERVER = "https://notary.docker.io"
DEFAULT_IMAGE_TAG = "latest"
DEFAULT_INSTANCE_NAME = "fhetoolkit-s390x-sample"
DEFAULT_LOCATION = "dal13"
DEFAULT_REGISTRATION_FILE = "hpvs-fhe-registration.txt"
DEFAULT_RESOURCE_PLAN_ID = "bb0005a1-ec13-4ee4-86f4-0c3b15a357d5"


# =============================================================================
# Deployment Configuration Sections
# =============================================================================
class RegistryConfig(BaseModel):
    """Container registry coordinates and credentials.

    Attributes:
        url: Registry host. Empty values resolve to docker.io.
        namespace: Account or organisation the image is pushed under.
        username: Registry login user.
        password: Registry login password or access token.
    """

    model_config = {"frozen": True}

    url: str = Field(default=DEFAULT_REGISTRY_URL, description="Registry host")
    namespace: str = Field(min_length=1, description="Registry namespace")
    username: str = Field(min_length=1, description="Registry login user")
    password: SecretStr = Field(description="Registry login password")

    @field_validator("url", mode="before")
    @classmethod
    def _default_url(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_REGISTRY_URL
        return value


class TrustDelegation(BaseModel):
    """Delegation key pair used to sign instead of the repository key.

    Attributes:
        private_key_file: Key to load into the local trust store. None when
            the key is already there under `key_name`.
    """

    model_config = {"frozen": True}

    key_name: str = Field(min_length=1)
    public_key_file: Path
    private_key_file: Optional[Path] = None
    passphrase: SecretStr


class TrustConfig(BaseModel):
    """Content-trust parameters.

    Attributes:
        root_passphrase: Passphrase of the repository root key.
        repository_passphrase: Passphrase of the repository (targets) key,
            used for signing when no delegation is configured.
        server: Trust metadata (notary) server.
        delegation: Optional delegation key material. When absent, the
            image is signed with the repository key only.
    """

    model_config = {"frozen": True}

    root_passphrase: SecretStr
    repository_passphrase: Optional[SecretStr] = None
    server: str = Field(default=DEFAULT_TRUST_SERVER)
    delegation: Optional[TrustDelegation] = None


class VendorKeyConfig(BaseModel):
    """Vendor GPG key pair that signs the registration definition."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    public_key_file: Path
    private_key_file: Path
    passphrase: SecretStr


class CloudTargetConfig(BaseModel):
    """Where and as what the instance is provisioned. All fields optional."""

    model_config = {"frozen": True}

    api_key: Optional[SecretStr] = None
    location: Optional[str] = None
    resource_group: Optional[str] = None
    resource_plan_id: Optional[str] = None
    instance_name: Optional[str] = None

    @field_validator("location", "resource_group", "resource_plan_id", "instance_name", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


# =============================================================================
# Deployment Configuration
# =============================================================================
class DeploymentConfig(BaseModel):
    """Immutable, fully-typed parameters of one deployment run.

    Invariant:
        platform and source_mode together determine the image reference.
        Whether local-build is allowed on this host is checked by the
        TrustSigner before any runtime call.

    Example:
        >>> config.repository
        'fhe-toolkit-fedora-s390x'
        >>> config.local_image
        'ibmcom/fhe-toolkit-fedora-s390x'
        >>> config.resolve_location()
        'dal13'
    """

    model_config = {"frozen": True}

    platform: Platform = Field(default_factory=Platform.default)
    source_mode: SourceMode = SourceMode.REMOTE_REGISTRY
    image_tag: str = Field(default=DEFAULT_IMAGE_TAG, min_length=1)
    registry: RegistryConfig
    trust: TrustConfig
    vendor_key: VendorKeyConfig
    cloud: CloudTargetConfig = Field(default_factory=CloudTargetConfig)
    registration_file: Optional[Path] = None

    @field_validator("platform", mode="before")
    @classmethod
    def _parse_platform(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return Platform.parse(value)
        return value

    # -------------------------------------------------------------------------
    # Derived image coordinates
    # -------------------------------------------------------------------------
    @property
    def repository(self) -> str:
        return self.platform.repository

    @property
    def local_image(self) -> str:
        """The image reference as it exists (or is pulled) locally."""
        return f"{self.source_mode.image_prefix}/{self.repository}"

    @property
    def target_image(self) -> str:
        """Registry image name the local image is tagged as, without tag."""
        return f"{self.registry.url}/{self.registry.namespace}/{self.repository}"

    @property
    def uses_delegation(self) -> bool:
        return self.trust.delegation is not None

    # -------------------------------------------------------------------------
    # Default resolution
    # -------------------------------------------------------------------------
    def resolve_api_key(self) -> SecretStr:
        """Cloud API key; falls back to the registry password when unset."""
        return self.cloud.api_key or self.registry.password

    def resolve_location(self) -> str:
        return self.cloud.location or DEFAULT_LOCATION

    def resolve_instance_name(self) -> str:
        return self.cloud.instance_name or DEFAULT_INSTANCE_NAME

    def resolve_resource_plan_id(self) -> str:
        return self.cloud.resource_plan_id or DEFAULT_RESOURCE_PLAN_ID

    def resolve_registration_file(self) -> Path:
        return self.registration_file or Path(DEFAULT_REGISTRATION_FILE)

    def resolve_signing_passphrase(self) -> SecretStr:
        """Passphrase for the sign-and-push step.

        Delegation passphrase when a delegation is configured, otherwise the
        repository passphrase. If neither exists, the root passphrase is
        reused; see ``signing_passphrase_is_root``.
        """
        if self.uses_delegation:
            return self.trust.delegation.passphrase
        return self.trust.repository_passphrase or self.trust.root_passphrase

    @property
    def signing_passphrase_is_root(self) -> bool:
        return not self.uses_delegation and self.trust.repository_passphrase is None

    def check_files(self) -> None:
        """Verify the vendor key files exist and are readable.

        Delegation key files are checked by the TrustSigner, which reports
        them as CryptoError.

        Raises:
            ConfigurationError: If a vendor key file is missing.
        """
        for label, path in (
            ("vendor_key.public_key_file", self.vendor_key.public_key_file),
            ("vendor_key.private_key_file", self.vendor_key.private_key_file),
        ):
            if not path.is_file():
                raise ConfigurationError(
                    message=f"The file '{path}' referenced by '{label}' does not exist",
                    error_code="MISSING_KEY_FILE",
                    details={"setting": label, "path": str(path)},
                )


# =============================================================================
# Operator Settings
# =============================================================================
class TimeoutConfig(BaseModel):
    """Upper bound, in seconds, for each class of blocking call."""

    registry: float = Field(default=60.0, gt=0, description="login, logout, tag, pull")
    push: float = Field(default=900.0, gt=0, description="sign and push")
    trust: float = Field(default=120.0, gt=0, description="trust key load, signer add")
    keyring: float = Field(default=60.0, gt=0, description="gpg import, encrypt, sign")
    key_fetch: float = Field(default=30.0, gt=0, description="recipient key download")
    iam: float = Field(default=30.0, gt=0, description="token exchange")
    lookup: float = Field(default=30.0, gt=0, description="account and resource group lookup")
    provision: float = Field(default=120.0, gt=0, description="instance creation")


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff for TransientError.

    Disabled by default (``max_retries=0``): a transient cloud failure
    fails the run and the caller re-invokes it.

    The delay for a zero-based attempt is:

        min(initial_delay * backoff_multiplier ** attempt + jitter, max_delay)

    where jitter is up to 10% of the base delay.
    """

    max_retries: int = Field(default=0, ge=0, le=10)
    initial_delay: float = Field(default=1.0, gt=0, le=30.0)
    max_delay: float = Field(default=30.0, gt=0, le=300.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0, le=10.0)

    def calculate_delay(self, attempt: int) -> float:
        base_delay = self.initial_delay * (self.backoff_multiplier ** attempt)
        jitter = random.uniform(0, base_delay * 0.1)
        return min(base_delay + jitter, self.max_delay)


class CloudEndpoints(BaseModel):
    """Base URLs of the cloud APIs."""

    iam_url: str = Field(default="https://iam.cloud.ibm.com")
    resource_controller_url: str = Field(default="https://resource-controller.cloud.ibm.com")


class RegistrationKeyConfig(BaseModel):
    """Fixed source of the public key the registration is encrypted for.

    Attributes:
        recipient_key_url: Where the provisioning service publishes its
            registration encryption key. Set once per installation.
        recipient_key_file: Local copy of that key, for hosts without
            access to the URL. Takes precedence over the URL.
        recipient_key_fingerprint: Optional pinned fingerprint. When set,
            the imported key must match it.
    """

    recipient_key_url: Optional[str] = None
    recipient_key_file: Optional[Path] = None
    recipient_key_fingerprint: Optional[str] = None


class DeploySettings(BaseSettings):
    """Installation-level settings, loaded from HPVS_DEPLOY_* variables.

    Attributes:
        log_level: Python logging level name.
        log_json: Render logs as JSON lines instead of console output.
        runtime_backend: Container runtime implementation ("docker" or "mock").
        keyring_backend: Keyring implementation ("gpg" or "mock").
        cloud_backend: Cloud API implementation ("ibm" or "mock").
        docker_binary: Path or name of the docker executable.
        gpg_binary: Path or name of the gpg executable.
        gpg_home: Optional GNUPGHOME for the keyring.
        token_refresh_margin: Refresh the access token when it expires
            within this many seconds.
    """

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    runtime_backend: Literal["docker", "mock"] = Field(default="docker")
    keyring_backend: Literal["gpg", "mock"] = Field(default="gpg")
    cloud_backend: Literal["ibm", "mock"] = Field(default="ibm")
    docker_binary: str = Field(default="docker")
    gpg_binary: str = Field(default="gpg")
    gpg_home: Optional[Path] = None
    token_refresh_margin: float = Field(default=60.0, ge=0)

    endpoints: CloudEndpoints = Field(default_factory=CloudEndpoints)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    registration: RegistrationKeyConfig = Field(default_factory=RegistrationKeyConfig)

    model_config = {
        "env_prefix": "HPVS_DEPLOY_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Legacy .conf Parsing
# =============================================================================
# Earlier releases sourced a shell file of KEY=value assignments. These
# are the keys they understood, mapped onto the nested YAML layout.
# =============================================================================
_LEGACY_KEYS: dict[str, tuple[str, ...]] = {
    "dockerUser": ("registry", "username"),
    "dockerPW": ("registry", "password"),
    "namespace": ("registry", "namespace"),
    "registryURL": ("registry", "url"),
    "rootPassphrase": ("trust", "root_passphrase"),
    "repoPassphrase": ("trust", "repository_passphrase"),
    "DCTServer": ("trust", "server"),
    "gpgVendorKeyName": ("vendor_key", "name"),
    "gpgVendorPubFile": ("vendor_key", "public_key_file"),
    "gpgVendorPriFile": ("vendor_key", "private_key_file"),
    "gpgVendorKeyPassphrase": ("vendor_key", "passphrase"),
    "APIKey": ("cloud", "api_key"),
    "location": ("cloud", "location"),
    "resource_group": ("cloud", "resource_group"),
    "resource_plan_id": ("cloud", "resource_plan_id"),
    "hpvsName": ("cloud", "instance_name"),
    "registrationFile": ("registration_file",),
    "HElib_version": ("image_tag",),
}

_LEGACY_DELEGATION_KEYS = {
    "delegationkeyName": "key_name",
    "delegationPubFile": "public_key_file",
    "delegationPriFile": "private_key_file",
    "delegationPassphrase": "passphrase",
}


def parse_legacy_conf(text: str) -> dict[str, Any]:
    """Parse a shell-style KEY=value config into the nested YAML layout.

    Comments, blank lines and an optional leading ``export`` are ignored.
    Values are unquoted with shell rules. Empty values count as unset.

    Raises:
        ConfigurationError: If a line cannot be parsed.
    """
    flat: dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        key, sep, raw_value = line.partition("=")
        if not sep or not key.strip().isidentifier():
            raise ConfigurationError(
                message=f"Invalid configuration line {lineno}: {raw_line!r}",
                error_code="INVALID_CONFIG_LINE",
                details={"line": lineno},
            )
        try:
            tokens = shlex.split(raw_value, comments=True)
        except ValueError as e:
            raise ConfigurationError(
                message=f"Invalid value on configuration line {lineno}: {e}",
                error_code="INVALID_CONFIG_LINE",
                details={"line": lineno},
            ) from e
        value = " ".join(tokens)
        if value:
            flat[key.strip()] = value

    data: dict[str, Any] = {}
    for key, value in flat.items():
        target = _LEGACY_KEYS.get(key)
        if target is None:
            continue
        section = data
        for part in target[:-1]:
            section = section.setdefault(part, {})
        section[target[-1]] = value

    delegation = {
        field: flat[key] for key, field in _LEGACY_DELEGATION_KEYS.items() if key in flat
    }
    use_delegation = flat.get("delegationkey", "").lower()
    if use_delegation == "true" or (use_delegation != "false" and "key_name" in delegation):
        data.setdefault("trust", {})["delegation"] = delegation

    return data


ENV_PREFIX = "HPVS_DEPLOY_"


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay HPVS_DEPLOY_<FIELD>[__<SUBFIELD>...] variables onto `data`.

    Only variables whose first part names a DeploymentConfig field are used;
    the rest belong to DeploySettings. Empty values are ignored.
    """
    for name, value in environ.items():
        if not name.upper().startswith(ENV_PREFIX) or not value:
            continue
        parts = name[len(ENV_PREFIX):].lower().split("__")
        if parts[0] not in DeploymentConfig.model_fields:
            continue
        section = data
        for part in parts[:-1]:
            if not isinstance(section.get(part), dict):
                section[part] = {}
            section = section[part]
        section[parts[-1]] = value
    return data


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(
    path: Optional[str | Path] = None,
    *,
    platform: Optional[str | Platform] = None,
    source_mode: Optional[SourceMode] = None,
    check_files: bool = True,
    environ: Optional[Mapping[str, str]] = None,
) -> DeploymentConfig:
    """Resolve the DeploymentConfig for one run.

    Args:
        path: Config file. ``.yaml``/``.yml`` files are read as YAML, any
            other suffix as the legacy KEY=value format. Defaults to
            DeployToHPVS.yaml in the current directory.
        platform: Platform from the command line; overrides the file.
        source_mode: Source mode from the command line; overrides the file.
        check_files: Verify the vendor key files exist.
        environ: Source of HPVS_DEPLOY_* overrides. Defaults to os.environ.

    Returns:
        A validated, immutable DeploymentConfig.

    Raises:
        ConfigurationError: If the file is missing, unreadable, malformed
            or fails validation, or if the platform is unsupported.
    """
    config_path = Path(path) if path is not None else Path(DEFAULT_CONFIG_FILE)
    if not config_path.is_file():
        raise ConfigurationError(
            message=f"Configuration file not found: {config_path}",
            error_code="CONFIG_NOT_FOUND",
            details={"path": str(config_path)},
        )

    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(
            message=f"Unable to read configuration file {config_path}: {e}",
            error_code="CONFIG_UNREADABLE",
            details={"path": str(config_path)},
        ) from e

    if config_path.suffix in (".yaml", ".yml"):
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                message=f"Malformed YAML in {config_path}: {e}",
                error_code="INVALID_YAML",
                details={"path": str(config_path)},
            ) from e
        data: dict[str, Any] = raw if isinstance(raw, dict) else {}
    else:
        data = parse_legacy_conf(text)

    apply_env_overrides(data, os.environ if environ is None else environ)

    if platform is not None:
        data["platform"] = platform
    if source_mode is not None:
        data["source_mode"] = source_mode

    try:
        config = DeploymentConfig(**data)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigurationError(
            message=f"Invalid configuration in {config_path}: " + "; ".join(problems),
            error_code="INVALID_CONFIG",
            details={"path": str(config_path), "problems": problems},
        ) from e

    if check_files:
        config.check_files()
    return config


def get_default_settings() -> DeploySettings:
    """Create DeploySettings from defaults and environment variables."""
    return DeploySettings()
