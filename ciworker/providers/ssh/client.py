from typing import Dict

from ciworker.providers.ssh.session import SandboxSession


class SSHSessionFactory:
    """Opens SSH sessions into sandbox containers"""

    def open(self, name: str, host: str, port: int, username: str,
             private_key_path: str, buffer: float, timeouts: Dict[str, float]) -> SandboxSession:
        session = SandboxSession(
            name,
            host=host,
            port=port,
            username=username,
            private_key_path=private_key_path,
            buffer=buffer,
            timeouts=timeouts,
        )
        return session.connect()
