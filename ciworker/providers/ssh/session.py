import codecs
import os
import time
from typing import Callable, Dict, Optional

import paramiko

from ciworker.models.sandbox_info import ExecutionResult
from ciworker.services.exceptions import FileTransferError, SSHConnectionError, SSHExecutionError
from ciworker.services.log import get_logger

_CHUNK_SIZE = 4096


class SandboxSession:
    """
    SSH session into one sandbox container.

    Output of executed commands is collected in full and, when a callback is
    given, handed over in batches at most every ``buffer`` seconds.
    """

    def __init__(self, name: str, host: str, port: int, username: str,
                 private_key_path: str, buffer: float, timeouts: Dict[str, float]):
        self.name = name
        self.host = host
        self.port = port
        self.username = username
        self.private_key_path = private_key_path
        self.buffer = buffer
        self.timeouts = dict(timeouts)
        self._client: Optional[paramiko.SSHClient] = None
        self._logger = get_logger(f"{__name__}.SandboxSession", vm=name)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self._client is None

    def connect(self) -> "SandboxSession":
        ssh_client = paramiko.SSHClient()
        ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            ssh_client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                key_filename=os.path.expanduser(self.private_key_path),
                timeout=self.timeouts.get("connect"),
                banner_timeout=self.timeouts.get("banner"),
                allow_agent=False,
                look_for_keys=False,
            )
        except (paramiko.SSHException, OSError) as e:
            ssh_client.close()
            raise SSHConnectionError(
                f"Failed to establish SSH connection to {self.host}:{self.port}: {e}",
                {"vm": self.name},
            ) from e
        self._client = ssh_client
        self._logger.info("SSH session opened", {"host": self.host, "port": self.port})
        return self

    def execute(self, command: str, output: Optional[Callable[[str], None]] = None) -> ExecutionResult:
        """
        Run a command in the sandbox

        Args:
            command: Shell command line
            output: Optional callback receiving combined output as it arrives

        Returns:
            ExecutionResult with the full stdout, stderr and exit status

        Raises:
            SSHExecutionError: If the command cannot be started or exceeds
                the "command" timeout
        """
        client = self._require_client()
        limit = self.timeouts.get("command")
        try:
            channel = client.get_transport().open_session()
            channel.exec_command(command)
        except (paramiko.SSHException, OSError, AttributeError) as e:
            raise SSHExecutionError(f"Command execution failed: {e}", {"vm": self.name}) from e

        self._logger.debug("Executing command", {"command": command})
        stdout, stderr = bytearray(), bytearray()
        pending = []
        out_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        err_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        started = last_flush = time.monotonic()
        try:
            while True:
                received = False
                if channel.recv_ready():
                    data = channel.recv(_CHUNK_SIZE)
                    stdout.extend(data)
                    pending.append(out_decoder.decode(data))
                    received = True
                if channel.recv_stderr_ready():
                    data = channel.recv_stderr(_CHUNK_SIZE)
                    stderr.extend(data)
                    pending.append(err_decoder.decode(data))
                    received = True

                now = time.monotonic()
                if output and pending and now - last_flush >= self.buffer:
                    output("".join(pending))
                    pending = []
                    last_flush = now

                if limit and now - started > limit:
                    raise SSHExecutionError(
                        f"Command timed out after {limit} seconds",
                        {"vm": self.name, "command": command},
                    )
                if not received:
                    if channel.exit_status_ready():
                        break
                    time.sleep(min(self.buffer, 0.1))
            return_code = channel.recv_exit_status()
        finally:
            channel.close()

        pending.append(out_decoder.decode(b"", final=True))
        pending.append(err_decoder.decode(b"", final=True))
        if output and "".join(pending):
            output("".join(pending))
        return ExecutionResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            return_code=return_code,
        )

    def upload_file(self, local_path: str, remote_path: str) -> None:
        client = self._require_client()
        if not os.path.exists(local_path):
            raise FileTransferError(f"Local file not found: {local_path}", {"vm": self.name})
        try:
            sftp = client.open_sftp()
            try:
                sftp.put(local_path, remote_path)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise FileTransferError(f"Failed to upload file to sandbox {self.name}: {e}") from e
        self._logger.info(f"Uploaded {local_path} to {remote_path}")

    def close(self) -> None:
        """Close the connection; calling it again does nothing"""
        if self._client is None:
            return
        client, self._client = self._client, None
        client.close()
        self._logger.info("SSH session closed")

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise SSHConnectionError("SSH session is not open", {"vm": self.name})
        return self._client
