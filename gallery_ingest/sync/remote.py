"""
Thin rsync/ssh wrappers for production-mode runs.

Transfers never raise: a failed pull or push is logged and reported through
the return value, and local results stay in place.
"""
import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Union

from ..exceptions import RemoteSyncError


class RemoteSyncAdapter:
    def __init__(self,
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 rsync: str = "rsync",
                 ssh: str = "ssh"):
        self.runner = runner
        self.rsync = rsync
        self.ssh = ssh

    def pull_catalog(self, remote_host: str, remote_path: str, local_path: Union[str, Path]) -> bool:
        """Fetches the remote catalog file so the run works on a local copy."""
        local_path = Path(local_path)
        logging.info(f"Pulling {remote_host}:{remote_path} -> {local_path}")
        local_path.parent.mkdir(parents=True, exist_ok=True)
        return self._attempt("Catalog pull", [
            [self.rsync, "-avz", f"{remote_host}:{remote_path}", str(local_path)],
        ])

    def push_directory(self, local_dir: Union[str, Path], remote_host: str, remote_dir: str) -> bool:
        """Mirrors local_dir into remote_dir, creating remote_dir if absent."""
        logging.info(f"Syncing {local_dir} -> {remote_host}:{remote_dir}")
        return self._attempt("Directory sync", [
            [self.ssh, remote_host, "mkdir", "-p", remote_dir],
            [self.rsync, "-avz", f"{str(local_dir).rstrip('/')}/", f"{remote_host}:{remote_dir.rstrip('/')}/"],
        ])

    def push_catalog(self, local_path: Union[str, Path], remote_host: str, remote_path: str) -> bool:
        """Uploads the updated catalog back to the remote host."""
        logging.info(f"Pushing {local_path} -> {remote_host}:{remote_path}")
        return self._attempt("Catalog push", [
            [self.rsync, "-avz", str(local_path), f"{remote_host}:{remote_path}"],
        ])

    def list_remote(self, remote_host: str, remote_dir: str) -> List[str]:
        """
        Filenames in remote_dir. Unlike the transfers this raises
        RemoteSyncError, since callers must not act on a partial listing.
        """
        result = self._run([self.ssh, remote_host, "ls", "-1", remote_dir], capture=True)
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def _attempt(self, label: str, commands: List[List[str]]) -> bool:
        try:
            for cmd in commands:
                self._run(cmd)
        except RemoteSyncError as e:
            logging.error(f"{label} failed: {e}")
            return False
        logging.info(f"{label} complete.")
        return True

    def _run(self, cmd: List[str], capture: bool = False) -> subprocess.CompletedProcess:
        logging.debug(f"  [exec] {' '.join(cmd)}")
        try:
            if capture:
                return self.runner(cmd, check=True, capture_output=True, text=True)
            return self.runner(cmd, check=True)
        except subprocess.CalledProcessError as e:
            raise RemoteSyncError(f"{cmd[0]} exited with status {e.returncode}") from e
        except OSError as e:
            raise RemoteSyncError(f"Cannot run {cmd[0]}: {e}") from e
