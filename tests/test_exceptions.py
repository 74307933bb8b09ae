"""
Tests for the feedsync exception hierarchy.
"""

import pytest

from feedsync.exceptions import (
    CatalogStoreError,
    ConfigurationError,
    CronParseError,
    DecodeError,
    FeedConnectionError,
    FeedSyncError,
    JobQueueError,
    ReconciliationError,
    TransferError,
    UnknownJobKindError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            CronParseError,
            FeedConnectionError,
            TransferError,
            DecodeError,
            ReconciliationError,
            CatalogStoreError,
            JobQueueError,
            UnknownJobKindError,
        ],
    )
    def test_all_derive_from_base(self, exc_class):
        assert issubclass(exc_class, FeedSyncError)

    def test_cron_error_is_config_and_value_error(self):
        assert issubclass(CronParseError, ConfigurationError)
        assert issubclass(CronParseError, ValueError)

    def test_connection_error_does_not_shadow_builtin(self):
        assert not issubclass(FeedConnectionError, ConnectionError)


class TestMessages:
    def test_base_carries_details(self):
        err = FeedSyncError("boom", details={"a": 1})
        assert str(err) == "boom"
        assert err.message == "boom"
        assert err.details == {"a": 1}

    def test_transfer_error_sizes(self):
        err = TransferError("short", file_name="f.xml", expected_size=10, actual_size=4)
        assert err.details == {"file_name": "f.xml", "expected_size": 10, "actual_size": 4}

    def test_decode_error_position(self):
        err = DecodeError("Malformed feed XML", position=(3, 14))
        assert str(err) == "Malformed feed XML (line 3, column 14)"
        assert err.position == (3, 14)

    def test_reconciliation_error_names_product(self):
        cause = CatalogStoreError("disk full")
        err = ReconciliationError("1001", "catalog write failed", cause=cause)
        assert str(err) == "Product '1001': catalog write failed"
        assert err.product_code == "1001"
        assert err.__cause__ is cause

    def test_unknown_job_kind(self):
        err = UnknownJobKindError("reindex", job_id="9")
        assert str(err) == "Unknown job kind: reindex"
        assert err.details == {"kind": "reindex", "job_id": "9"}

    def test_connection_error_host(self):
        err = FeedConnectionError("refused", host="ftp.example.com")
        assert err.host == "ftp.example.com"
