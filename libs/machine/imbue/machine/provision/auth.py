import shlex
from pathlib import Path

from loguru import logger

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.errors import AuthConfigurationError
from imbue.machine.errors import RemoteCommandError
from imbue.machine.interfaces.provisioner import ProvisionerInterface


def _require_local_file(label: str, path: Path | None) -> Path:
    if path is None:
        raise AuthConfigurationError(f"No {label} configured")
    if not path.is_file():
        raise AuthConfigurationError(f"{label} not found at {path}")
    return path


def configure_auth(provisioner: ProvisionerInterface, auth_options: AuthOptions) -> None:
    """Install the host's TLS material on the node and restart the engine.

    The CA certificate, server certificate and server key must already exist locally;
    generating them is the caller's job. Remote locations default to ca.pem, server.pem
    and server-key.pem in the provisioner's remote auth dir.
    """
    ca_cert = _require_local_file("CA certificate", auth_options.ca_cert_path)
    server_cert = _require_local_file("server certificate", auth_options.server_cert_path)
    server_key = _require_local_file("server key", auth_options.server_key_path)

    remote_dir = provisioner.get_remote_auth_dir()
    uploads = (
        (ca_cert, auth_options.ca_cert_remote_path or remote_dir / "ca.pem"),
        (server_cert, auth_options.server_cert_remote_path or remote_dir / "server.pem"),
        (server_key, auth_options.server_key_remote_path or remote_dir / "server-key.pem"),
    )

    remote_dirs = sorted({str(remote_path.parent) for _, remote_path in uploads})
    mkdir_command = "mkdir -p " + " ".join(shlex.quote(d) for d in remote_dirs)
    result = provisioner.execute_command(mkdir_command, is_sudo=True)
    if not result.success:
        raise RemoteCommandError(mkdir_command, result.stderr)

    for local_path, remote_path in uploads:
        logger.debug("Copying {} to {}", local_path, remote_path)
        provisioner.upload_file(local_path.read_bytes(), remote_path)

    provisioner.restart_engine()
