from pydantic import Field

from imbue.machine.drivers.base import get_ssh_address
from imbue.machine.errors import SSHError
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.remote_shell import RemoteShellInterface
from imbue.machine.primitives import RunState
from imbue.machine.utils.polling import ReadinessCheck

SSH_NOOP_COMMAND = "exit 0"


class MachineInState(ReadinessCheck):
    """Ready once the driver reports the desired run state. Always queries the driver live."""

    driver: DriverInterface = Field(description="Driver to query")
    desired_state: RunState = Field(description="State to wait for")

    def check(self) -> bool:
        try:
            current_state = self.driver.get_state()
        except Exception as e:
            # driver errors are opaque; a failed query counts as "not yet"
            return self.record_failure("Error getting machine state: {}", e)
        if current_state == self.desired_state:
            return True
        return self.record_failure("Machine is {}, waiting for {}", current_state, self.desired_state)


class SSHAvailable(ReadinessCheck):
    """Ready once `ssh <node> exit 0` succeeds.

    Resolves the address from the driver, waits for the SSH port to accept TCP connections,
    then runs a no-op command. Every failed step is logged and recorded, never raised.
    """

    driver: DriverInterface = Field(description="Driver of the node")
    remote_shell: RemoteShellInterface = Field(description="Shell used to reach the node")
    tcp_timeout_seconds: float = Field(default=5.0, description="How long to wait for the SSH port per check")

    def check(self) -> bool:
        try:
            hostname = self.driver.get_ssh_hostname()
        except Exception as e:
            return self.record_failure("Error getting IP address waiting for SSH: {}", e)
        try:
            port = self.driver.get_ssh_port()
        except Exception as e:
            return self.record_failure("Error getting SSH port: {}", e)

        try:
            self.remote_shell.wait_for_tcp(hostname, port, self.tcp_timeout_seconds)
        except (SSHError, OSError) as e:
            return self.record_failure("Error waiting for TCP waiting for SSH: {}", e)

        try:
            command = self.remote_shell.build_command(get_ssh_address(self.driver), [SSH_NOOP_COMMAND])
        except Exception as e:
            return self.record_failure("Error getting ssh command '{}': {}", SSH_NOOP_COMMAND, e)

        try:
            result = self.remote_shell.run(command)
        except Exception as e:
            return self.record_failure("Error running ssh command '{}': {}", SSH_NOOP_COMMAND, e)
        if not result.success:
            return self.record_failure(
                "Error running ssh command '{}': exit status {}: {}",
                SSH_NOOP_COMMAND,
                result.returncode,
                result.stderr.strip(),
            )
        return True
