"""FTP client for publishing the sales spreadsheet and shipping labels.

ftplib is blocking; every call runs in a worker thread via asyncio.to_thread so
the event loop keeps serving other pipeline runs.
"""

import asyncio
import ftplib
import logging
import posixpath
from pathlib import Path
from typing import Awaitable, Callable

from fulfillment.errors import FileTransferError

logger = logging.getLogger(__name__)

PasswordGetter = Callable[[], Awaitable[str | None]]


class FileTransferClient:
    """Async wrapper over ftplib.FTP / FTP_TLS. Use as ``async with client: ...``."""

    def __init__(
        self,
        host: str,
        user: str,
        password: PasswordGetter,
        *,
        port: int = 21,
        secure: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._secure = secure
        self._timeout = timeout
        self._ftp: ftplib.FTP | None = None

    async def __aenter__(self) -> "FileTransferClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        if self._ftp is not None:
            return
        if not self._host:
            raise FileTransferError("File-transfer host is not configured")
        password = await self._password() or ""
        try:
            self._ftp = await asyncio.to_thread(self._open, password)
        except ftplib.all_errors as e:
            raise FileTransferError(f"FTP connect to {self._host} failed: {e}") from e
        logger.debug("FTP connected to %s:%d", self._host, self._port)

    def _open(self, password: str) -> ftplib.FTP:
        ftp: ftplib.FTP = ftplib.FTP_TLS() if self._secure else ftplib.FTP()
        ftp.connect(self._host, self._port, timeout=self._timeout)
        ftp.login(self._user, password)
        if isinstance(ftp, ftplib.FTP_TLS):
            ftp.prot_p()
        return ftp

    async def disconnect(self) -> None:
        if self._ftp is None:
            return
        ftp, self._ftp = self._ftp, None
        try:
            await asyncio.to_thread(ftp.quit)
        except ftplib.all_errors:
            ftp.close()

    def _require(self) -> ftplib.FTP:
        if self._ftp is None:
            raise FileTransferError("FTP client is not connected")
        return self._ftp

    async def exists(self, remote_path: str) -> bool:
        ftp = self._require()

        def _size() -> bool:
            try:
                ftp.voidcmd("TYPE I")
                ftp.size(remote_path)
                return True
            except ftplib.error_perm:
                return False

        try:
            return await asyncio.to_thread(_size)
        except ftplib.all_errors as e:
            raise FileTransferError(f"FTP SIZE {remote_path} failed: {e}") from e

    async def download(self, remote_path: str, local_path: Path) -> None:
        ftp = self._require()
        local_path.parent.mkdir(parents=True, exist_ok=True)

        def _retr() -> None:
            with local_path.open("wb") as fh:
                ftp.retrbinary(f"RETR {remote_path}", fh.write)

        try:
            await asyncio.to_thread(_retr)
        except ftplib.all_errors as e:
            raise FileTransferError(f"FTP download {remote_path} failed: {e}") from e

    async def upload(self, local_path: Path, remote_path: str) -> None:
        """Upload a file, creating missing remote directories first."""
        ftp = self._require()

        def _stor() -> None:
            _ensure_remote_dir(ftp, posixpath.dirname(remote_path))
            with local_path.open("rb") as fh:
                ftp.storbinary(f"STOR {remote_path}", fh)

        try:
            await asyncio.to_thread(_stor)
        except ftplib.all_errors as e:
            raise FileTransferError(f"FTP upload {remote_path} failed: {e}") from e
        logger.debug("FTP uploaded %s -> %s", local_path, remote_path)


def _ensure_remote_dir(ftp: ftplib.FTP, remote_dir: str) -> None:
    if not remote_dir or remote_dir == "/":
        return
    current = "/" if remote_dir.startswith("/") else ""
    for part in [p for p in remote_dir.split("/") if p]:
        current = posixpath.join(current, part) if current else part
        try:
            ftp.mkd(current)
        except ftplib.error_perm:
            pass  # already exists
