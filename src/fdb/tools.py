"""Locate kubectl and kbcli, downloading them into ``$FDB_HOME/bin`` when missing."""

from __future__ import annotations

import json
import logging
import os
import platform
import shutil
import stat
import tarfile
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from fdb.errors import NetworkError, PlatformError, ToolNotFoundError
from fdb.models import ToolPaths
from fdb.settings import FdbSettings

LOGGER = logging.getLogger("fdb.tools")

KUBECTL = "kubectl"
KBCLI = "kbcli"
USER_AGENT = "fdb-cli"
_CHUNK_SIZE = 64 * 1024
_EXECUTABLE_MODE = 0o755

_OS_NAMES: dict[str, str] = {
    "linux": "linux",
    "darwin": "darwin",
}
_ARCH_NAMES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


@dataclass(frozen=True)
class HostPlatform:
    os: str
    arch: str


def detect_platform(system: Optional[str] = None, machine: Optional[str] = None) -> HostPlatform:
    raw_system = (system if system is not None else platform.system()).strip().lower()
    raw_machine = (machine if machine is not None else platform.machine()).strip().lower()
    os_name = _OS_NAMES.get(raw_system)
    arch = _ARCH_NAMES.get(raw_machine)
    if os_name is None or arch is None:
        raise PlatformError(
            f"no kubectl/kbcli release for {raw_system or 'unknown'}/{raw_machine or 'unknown'} "
            f"(supported: linux, darwin on amd64, arm64); install both tools on PATH instead"
        )
    return HostPlatform(os=os_name, arch=arch)


class Downloader:
    """HTTP fetches for release metadata and binaries."""

    def __init__(self, *, timeout_seconds: float, console: Optional[Console] = None) -> None:
        self._timeout_seconds = timeout_seconds
        self._console = console if console is not None else Console(stderr=True)

    def fetch_text(self, url: str, headers: Optional[Mapping[str, str]] = None) -> str:
        request = Request(url, headers={"User-Agent": USER_AGENT, **(headers or {})})
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                return response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            raise NetworkError(f"request failed with HTTP {exc.code}", url=url) from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            raise NetworkError(f"request failed: {_reason(exc)}", url=url) from exc

    def fetch_json(self, url: str, headers: Optional[Mapping[str, str]] = None) -> dict[str, object]:
        body = self.fetch_text(url, headers=headers)
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise NetworkError("response is not valid JSON", url=url) from exc
        if not isinstance(payload, dict):
            raise NetworkError("response is not a JSON object", url=url)
        return payload

    def download(self, url: str, dest: Path, *, label: str) -> Path:
        """Stream ``url`` into ``dest``; a partial download never replaces an existing file."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        request = Request(url, headers={"User-Agent": USER_AGENT})
        handle, temp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(handle, "wb") as sink:
                self._stream(request, url, sink, label=label)
            os.replace(temp_path, dest)
        finally:
            temp_path.unlink(missing_ok=True)
        LOGGER.info("downloaded label=%s url=%s dest=%s", label, url, dest)
        return dest

    def _stream(self, request: Request, url: str, sink: BinaryIO, *, label: str) -> None:
        progress = Progress(
            TextColumn("Downloading {task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=self._console,
            transient=True,
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response, progress:
                length = response.headers.get("Content-Length")
                total = int(length) if length and length.isdigit() else None
                task = progress.add_task(label, total=total)
                while True:
                    chunk = response.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    sink.write(chunk)
                    progress.update(task, advance=len(chunk))
        except HTTPError as exc:
            raise NetworkError(f"download failed with HTTP {exc.code}", url=url) from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            raise NetworkError(f"download failed: {_reason(exc)}", url=url) from exc


class ToolLocator:
    """Finds kubectl and kbcli on PATH or in ``$FDB_HOME/bin``, installing them if needed."""

    def __init__(
        self,
        settings: FdbSettings,
        *,
        downloader: Optional[Downloader] = None,
        platform_detector: Callable[[], HostPlatform] = detect_platform,
    ) -> None:
        self.settings = settings
        self.bin_dir = settings.bin_dir
        self._downloader = downloader
        self._platform_detector = platform_detector
        self._paths: Optional[ToolPaths] = None

    def find(self, name: str) -> Optional[Path]:
        on_path = shutil.which(name)
        if on_path is not None:
            return Path(on_path)
        local = self.bin_dir / name
        if local.is_file() and os.access(local, os.X_OK):
            return local
        return None

    def ensure(self) -> ToolPaths:
        if self._paths is not None:
            return self._paths

        kubectl = self.find(KUBECTL)
        kbcli = self.find(KBCLI)
        if kubectl is None or kbcli is None:
            host = self._platform_detector()
            self.bin_dir.mkdir(parents=True, exist_ok=True)
            if kubectl is None:
                kubectl = self._install_kubectl(host)
            if kbcli is None:
                kbcli = self._install_kbcli(host)

        self._paths = ToolPaths(kubectl=kubectl, kbcli=kbcli)
        LOGGER.debug("tools resolved kubectl=%s kbcli=%s", kubectl, kbcli)
        return self._paths

    def _get_downloader(self) -> Downloader:
        if self._downloader is None:
            self._downloader = Downloader(timeout_seconds=self.settings.http_timeout_seconds)
        return self._downloader

    def _install_kubectl(self, host: HostPlatform) -> Path:
        downloader = self._get_downloader()
        base_url = self.settings.kubectl_release_url
        version = downloader.fetch_text(f"{base_url}/stable.txt").strip()
        if not version:
            raise NetworkError("empty kubectl version", url=f"{base_url}/stable.txt")
        url = f"{base_url}/{version}/bin/{host.os}/{host.arch}/{KUBECTL}"
        LOGGER.info("installing kubectl version=%s os=%s arch=%s", version, host.os, host.arch)
        dest = downloader.download(url, self.bin_dir / KUBECTL, label=KUBECTL)
        make_executable(dest)
        return dest

    def _install_kbcli(self, host: HostPlatform) -> Path:
        downloader = self._get_downloader()
        api_url = self.settings.kbcli_release_api
        release = downloader.fetch_json(api_url, headers={"Accept": "application/vnd.github.v3+json"})
        tag = release.get("tag_name")
        if not isinstance(tag, str) or not tag:
            raise NetworkError("could not read tag_name from release metadata", url=api_url)

        archive_name = f"{KBCLI}-{host.os}-{host.arch}-{tag}.tar.gz"
        url = f"{self.settings.kbcli_download_url}/{tag}/{archive_name}"
        LOGGER.info("installing kbcli version=%s os=%s arch=%s", tag, host.os, host.arch)
        archive = downloader.download(url, self.bin_dir / f"{KBCLI}-download.tar.gz", label=KBCLI)
        try:
            dest = extract_binary(archive, KBCLI, self.bin_dir / KBCLI, url=url)
        finally:
            archive.unlink(missing_ok=True)
        make_executable(dest)
        return dest


def extract_binary(archive: Path, binary_name: str, dest: Path, *, url: str) -> Path:
    """Copy the regular file named ``binary_name`` out of a .tar.gz, ignoring its directory."""
    try:
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar.getmembers():
                if not member.isfile() or Path(member.name).name != binary_name:
                    continue
                source = tar.extractfile(member)
                if source is None:
                    continue
                with source, open(dest, "wb") as target:
                    shutil.copyfileobj(source, target)
                return dest
    except (tarfile.TarError, EOFError) as exc:
        raise NetworkError(f"downloaded archive is unreadable: {exc}", url=url) from exc
    raise ToolNotFoundError(f"{binary_name} binary not found inside archive {url}")


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(stat.S_IMODE(mode) | _EXECUTABLE_MODE)


def _reason(exc: BaseException) -> str:
    reason = getattr(exc, "reason", None)
    return str(reason if reason is not None else exc)
