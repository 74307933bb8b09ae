"""
Tests for the feed downloader and its FTP/SFTP connections.

Remote hosts are replaced by mocks of ``ftplib.FTP`` and paramiko.
"""

import ftplib
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from feedsync.config.settings import SourceSettings
from feedsync.connections import FTPConnection, SFTPConnection, open_remote
from feedsync.exceptions import ConfigurationError, FeedConnectionError, TransferError
from feedsync.feed.downloader import FeedDownloader, download

PAYLOAD = b"<TobaccoData><Groups/></TobaccoData>"


def _ftp_client(payload: bytes = PAYLOAD, reported_size: int | None = None) -> MagicMock:
    client = MagicMock()
    client.size.return_value = len(payload) if reported_size is None else reported_size

    def retrbinary(cmd, callback):
        callback(payload[:10])
        callback(payload[10:])

    client.retrbinary.side_effect = retrbinary
    return client


def _source(**overrides) -> SourceSettings:
    values = dict(host="ftp.example.com", username="feed", password="secret")
    values.update(overrides)
    return SourceSettings(**values)


class TestFTPDownload:
    def test_downloads_into_work_dir(self, tmp_path: Path):
        client = _ftp_client()
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client) as ftp_cls:
            result = FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")

        ftp_cls.assert_called_once_with(timeout=30.0)
        client.connect.assert_called_once_with("ftp.example.com", 21)
        client.login.assert_called_once_with(user="feed", passwd="secret")
        client.cwd.assert_called_once_with("TOBACCO")
        assert client.retrbinary.call_args[0][0] == "RETR TobaccoData.xml"
        client.quit.assert_called_once()

        assert result.local_path == tmp_path / "TobaccoData.xml"
        assert result.size == len(PAYLOAD)
        assert result.local_path.read_bytes() == PAYLOAD
        assert not (tmp_path / "TobaccoData.xml.part").exists()

    def test_size_mismatch_is_rejected(self, tmp_path: Path):
        client = _ftp_client(reported_size=len(PAYLOAD) + 100)
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(TransferError) as exc_info:
                FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")

        assert exc_info.value.expected_size == len(PAYLOAD) + 100
        assert exc_info.value.actual_size == len(PAYLOAD)
        assert list(tmp_path.iterdir()) == []
        client.quit.assert_called_once()

    def test_unknown_size_is_accepted(self, tmp_path: Path):
        client = _ftp_client()
        client.size.side_effect = ftplib.error_perm("502 SIZE not implemented")
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            result = FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")
        assert result.size == len(PAYLOAD)

    def test_missing_remote_file(self, tmp_path: Path):
        client = _ftp_client()
        client.size.side_effect = ftplib.error_perm("550 No such file")
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(TransferError, match="not found"):
                FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")
        assert not (tmp_path / "TobaccoData.xml").exists()

    def test_login_rejected(self, tmp_path: Path):
        client = _ftp_client()
        client.login.side_effect = ftplib.error_perm("530 Login incorrect")
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(FeedConnectionError, match="rejected") as exc_info:
                FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")
        assert exc_info.value.host == "ftp.example.com"
        client.close.assert_called()

    def test_unreachable_host(self, tmp_path: Path):
        client = _ftp_client()
        client.connect.side_effect = OSError("Connection refused")
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(FeedConnectionError, match="Cannot connect"):
                FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")

    def test_interrupted_transfer_leaves_nothing(self, tmp_path: Path):
        client = _ftp_client()

        def retrbinary(cmd, callback):
            callback(b"partial")
            raise EOFError()

        client.retrbinary.side_effect = retrbinary
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(TransferError, match="interrupted"):
                FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")
        assert list(tmp_path.iterdir()) == []

    def test_existing_file_replaced_only_on_success(self, tmp_path: Path):
        (tmp_path / "TobaccoData.xml").write_bytes(b"old")
        client = _ftp_client(reported_size=999)
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(TransferError):
                FeedDownloader(_source(), tmp_path).download("TobaccoData.xml")
        assert (tmp_path / "TobaccoData.xml").read_bytes() == b"old"

    def test_path_components_are_stripped(self, tmp_path: Path):
        downloader = FeedDownloader(_source(), tmp_path)
        assert downloader.local_path("../../etc/TobaccoData.xml") == tmp_path / "TobaccoData.xml"
        with pytest.raises(TransferError):
            downloader.local_path("..")

    def test_functional_download(self, tmp_path: Path):
        client = _ftp_client()
        with patch("feedsync.connections.ftp.ftplib.FTP", return_value=client):
            result = download(
                "ftp.example.com",
                {"username": "u", "password": "p", "port": 2121},
                "FEEDS",
                "TobaccoData.xml",
                work_dir=tmp_path,
            )
        client.connect.assert_called_once_with("ftp.example.com", 2121)
        client.cwd.assert_called_once_with("FEEDS")
        assert result.local_path.read_bytes() == PAYLOAD


class TestSFTPDownload:
    def test_downloads_over_sftp(self, tmp_path: Path):
        transport = MagicMock()
        sftp = MagicMock()
        sftp.stat.return_value = SimpleNamespace(st_size=len(PAYLOAD))
        sftp.get.side_effect = lambda remote, local: Path(local).write_bytes(PAYLOAD)

        with (
            patch("feedsync.connections.sftp.paramiko.Transport", return_value=transport) as transport_cls,
            patch("feedsync.connections.sftp.paramiko.SFTPClient.from_transport", return_value=sftp),
        ):
            result = FeedDownloader(_source(protocol="sftp"), tmp_path).download("TobaccoData.xml")

        transport_cls.assert_called_once_with(("ftp.example.com", 22))
        transport.connect.assert_called_once_with(username="feed", password="secret", pkey=None)
        sftp.chdir.assert_called_once_with("TOBACCO")
        assert result.local_path.read_bytes() == PAYLOAD
        sftp.close.assert_called_once()
        transport.close.assert_called_once()

    def test_authentication_failure(self, tmp_path: Path):
        transport = MagicMock()
        transport.connect.side_effect = paramiko.AuthenticationException("bad password")
        with patch("feedsync.connections.sftp.paramiko.Transport", return_value=transport):
            with pytest.raises(FeedConnectionError, match="rejected"):
                FeedDownloader(_source(protocol="sftp"), tmp_path).download("TobaccoData.xml")
        transport.close.assert_called_once()

    def test_missing_remote_file(self, tmp_path: Path):
        sftp = MagicMock()
        sftp.stat.side_effect = FileNotFoundError("no such file")
        with (
            patch("feedsync.connections.sftp.paramiko.Transport", return_value=MagicMock()),
            patch("feedsync.connections.sftp.paramiko.SFTPClient.from_transport", return_value=sftp),
        ):
            with pytest.raises(TransferError, match="not found"):
                FeedDownloader(_source(protocol="sftp"), tmp_path).download("TobaccoData.xml")


class TestOpenRemote:
    def test_dispatch(self):
        assert isinstance(open_remote("x", {"type": "ftp", "config": {"host": "h"}}), FTPConnection)
        assert isinstance(open_remote("x", {"type": "sftp", "config": {"host": "h"}}), SFTPConnection)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            open_remote("x", {"type": "gopher", "config": {}})

    def test_missing_host(self):
        with pytest.raises(FeedConnectionError, match="missing host"):
            FTPConnection("x", {"type": "ftp", "config": {}}).connect()
