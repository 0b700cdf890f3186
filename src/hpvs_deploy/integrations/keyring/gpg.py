"""
hpvs_deploy.integrations.keyring.gpg - GnuPG Keyring
======================================================

Keyring backed by the `gpg` command line, always in batch mode. Passphrases
are fed on stdin (`--passphrase-fd 0` with loopback pinentry), never as
arguments.

Key identities are read from gpg's machine-readable colon listing:

    pub:-:3072:1:AB12CD34EF56AB78:1650000000:::-:::scESC::::::23::0:
    fpr:::::::::0123456789ABCDEF0123456789ABCDEF01234567:
    uid:-::::1650000000::HASH::Acme Vendor <vendor@acme.example>::::::::::0:
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from pydantic import SecretStr

from hpvs_deploy.core.exceptions import CryptoError
from hpvs_deploy.core.models import CommandResult
from hpvs_deploy.integrations.keyring.base import KeyInfo, Keyring
from hpvs_deploy.integrations.process import run_command


logger = structlog.get_logger()


def parse_colon_listing(text: str) -> list[KeyInfo]:
    """Extract (fingerprint, first uid) pairs from `gpg --with-colons` output.

    Only primary keys ("pub"/"sec" records) start a new entry; subkey
    fingerprints are ignored.
    """
    keys: list[KeyInfo] = []
    fingerprint: Optional[str] = None
    uid = ""
    expect_primary_fpr = False

    for line in text.splitlines():
        fields = line.split(":")
        record = fields[0]
        if record in ("pub", "sec"):
            if fingerprint:
                keys.append(KeyInfo(fingerprint=fingerprint, uid=uid))
            fingerprint, uid = None, ""
            expect_primary_fpr = True
        elif record == "fpr" and expect_primary_fpr and len(fields) > 9:
            fingerprint = fields[9].upper()
            expect_primary_fpr = False
        elif record in ("sub", "ssb"):
            expect_primary_fpr = False
        elif record == "uid" and not uid and len(fields) > 9:
            uid = fields[9]

    if fingerprint:
        keys.append(KeyInfo(fingerprint=fingerprint, uid=uid))
    return keys


class GpgKeyring(Keyring):
    """Keyring that shells out to GnuPG.

    Attributes:
        _binary: gpg executable name or path.
        _home: Optional GNUPGHOME directory.
        _timeout: Per-command timeout in seconds.
    """

    def __init__(
        self,
        binary: str = "gpg",
        home: Optional[Path] = None,
        timeout: float = 60.0,
    ) -> None:
        self._binary = binary
        self._home = home
        self._timeout = timeout
        self._logger = logger.bind(component="gpg_keyring")

    @property
    def name(self) -> str:
        return "gpg"

    async def inspect_key(self, key_file: Path) -> KeyInfo:
        result = await self._gpg(
            ["--with-colons", "--import-options", "show-only", "--import", str(key_file)]
        )
        self._check(result, "KEY_INSPECT_FAILED", f"Unable to read key file '{key_file}'")

        keys = parse_colon_listing(result.stdout)
        if not keys:
            raise CryptoError(
                message=f"No OpenPGP key found in '{key_file}'",
                error_code="KEY_INSPECT_FAILED",
                details={"key_file": str(key_file)},
            )
        return keys[0]

    async def import_public_key(self, key_file: Path) -> KeyInfo:
        info = await self.inspect_key(key_file)
        result = await self._gpg(["--import", str(key_file)])
        self._check(result, "KEY_IMPORT_FAILED", f"Failed to import public key '{key_file}'")
        self._logger.info("gpg_public_key_imported", fingerprint=info.fingerprint, uid=info.uid)
        return info

    async def import_private_key(self, key_file: Path, passphrase: SecretStr) -> KeyInfo:
        info = await self.inspect_key(key_file)
        result = await self._gpg(
            ["--pinentry-mode", "loopback", "--passphrase-fd", "0", "--import", str(key_file)],
            stdin=passphrase,
        )
        self._check(result, "KEY_IMPORT_FAILED", f"Failed to import private key '{key_file}'")
        self._logger.info("gpg_private_key_imported", fingerprint=info.fingerprint, uid=info.uid)
        return info

    async def encrypt_and_sign(
        self,
        source: Path,
        destination: Path,
        *,
        recipient: str,
        signer: str,
        passphrase: SecretStr,
    ) -> None:
        # The recipient key comes from a pinned source rather than the web of
        # trust, hence --trust-model always.
        result = await self._gpg(
            [
                "--yes",
                "--pinentry-mode", "loopback",
                "--passphrase-fd", "0",
                "--trust-model", "always",
                "--armor",
                "--output", str(destination),
                "--local-user", signer,
                "--recipient", recipient,
                "--encrypt", "--sign",
                str(source),
            ],
            stdin=passphrase,
        )
        self._check(
            result,
            "ENCRYPT_SIGN_FAILED",
            f"Failed to encrypt '{source}' for '{recipient}' signed by '{signer}'",
        )

    async def decrypt(self, source: Path, passphrase: SecretStr) -> bytes:
        result = await self._gpg(
            ["--pinentry-mode", "loopback", "--passphrase-fd", "0", "--decrypt", str(source)],
            stdin=passphrase,
        )
        self._check(result, "DECRYPT_FAILED", f"Failed to decrypt '{source}'")
        return result.raw_stdout

    async def _gpg(self, args: list[str], stdin: Optional[SecretStr] = None) -> CommandResult:
        argv = [self._binary, "--batch"]
        if self._home is not None:
            argv += ["--homedir", str(self._home)]
        return await run_command(
            [*argv, *args],
            timeout=self._timeout,
            stdin=stdin.get_secret_value().encode() + b"\n" if stdin is not None else None,
        )

    def _check(self, result: CommandResult, error_code: str, message: str) -> None:
        if result.ok:
            return
        self._logger.error("gpg_command_failed", error_code=error_code, returncode=result.returncode)
        raise CryptoError(
            message=f"{message}: {result.output or 'gpg exited with status ' + str(result.returncode)}",
            error_code=error_code,
            details={"returncode": result.returncode},
        )
