"""
Provides terraform binaries by version. Binaries are cached per version and platform,
and downloaded from the hashicorp release site on a miss. A version that cannot be provided
is an error -- never silently replaced by some other version
"""

import logging
import os
import platform
import re
import shutil
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Optional

import httpx

from colonist.errors import VersionResolutionFailed
from colonist.session import Session

logger = logging.getLogger(__name__)

RELEASES_URL = "https://releases.hashicorp.com/terraform"
DEFAULT_ROOT = Path("~/.colonist/terraform")
BINARY = "terraform"

_version_re = re.compile(r"\d+\.\d+\.\d+(-[0-9A-Za-z.]+)?")
_arch_aliases = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}


def current_platform() -> str:
    machine = platform.machine().lower()
    return f"{platform.system().lower()}_{_arch_aliases.get(machine, machine)}"


class VersionRepo:
    def __init__(
        self,
        root: Optional[Path] = None,
        platform: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        base_url: str = RELEASES_URL,
    ) -> None:
        self.root = Path(root or DEFAULT_ROOT).expanduser()
        self.platform = platform or current_platform()
        self.client = client
        self.base_url = base_url.rstrip("/")
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def key(self, version: str) -> str:
        return f"{version}_{self.platform}"

    def path_of(self, version: str) -> Path:
        return self.root / self.key(version) / BINARY

    def installed(self) -> list[str]:
        if not self.root.is_dir():
            return []
        suffix = f"_{self.platform}"
        return sorted(
            path.name[: -len(suffix)]
            for path in self.root.iterdir()
            if path.name.endswith(suffix) and (path / BINARY).exists()
        )

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def ensure(self, version: str) -> Path:
        """Path of the binary for `version`, downloading it first if not cached yet"""
        if not _version_re.fullmatch(version):
            raise VersionResolutionFailed(version, "not a valid version string")
        path = self.path_of(version)
        with self._lock_for(self.key(version)):
            if not path.exists():
                logger.info(f"terraform {version} not cached, installing to {path}")
                try:
                    self._install(version, path)
                except OSError as e:
                    raise VersionResolutionFailed(version, f"unable to install into {self.root}: {e!r}") from e
        return path

    def resolve_for(self, session: Session, version: Optional[str]) -> str:
        """Binary to be used within `session` for the given required version.
        No version at all means whatever `terraform` there is on PATH"""
        if version is None:
            found = shutil.which(BINARY)
            if found is None:
                raise VersionResolutionFailed("default", "no version configured and no terraform on PATH")
            return found
        path = self.ensure(version)
        logger.debug(f"session {session.id} uses terraform {version} from {path}")
        return str(path)

    def _download(self, client: httpx.Client, url: str, archive: Path) -> None:
        with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            with open(archive, "wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)

    def _install(self, version: str, dest: Path) -> None:
        url = f"{self.base_url}/{version}/terraform_{version}_{self.platform}.zip"
        self.root.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=self.root) as tmp:
            archive = Path(tmp) / "terraform.zip"
            try:
                if self.client is not None:
                    self._download(self.client, url, archive)
                else:
                    timeout = httpx.Timeout(connect=30.0, read=300.0, write=30.0, pool=30.0)
                    with httpx.Client(timeout=timeout) as client:
                        self._download(client, url, archive)
            except httpx.HTTPError as e:
                raise VersionResolutionFailed(version, f"download of {url} failed: {e!r}") from e

            try:
                with zipfile.ZipFile(archive) as zf:
                    extracted = Path(zf.extract(BINARY, tmp))
            except (zipfile.BadZipFile, KeyError) as e:
                raise VersionResolutionFailed(version, f"unusable archive {url}: {e!r}") from e

            extracted.chmod(0o755)
            dest.parent.mkdir(parents=True, exist_ok=True)
            os.replace(extracted, dest)
        logger.info(f"installed terraform {version} for {self.platform}")
