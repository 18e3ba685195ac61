"""
Tests for the S3 object storage wrapper
"""
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from conditions.core.exceptions import StorageError
from conditions.domain.services.object_storage import ObjectStorage


class TestPublicUrl:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "endpoint,public_base,expected",
        [
            ("", None, "https://bra-bucket.s3.amazonaws.com/vanoise%202024.pdf"),
            ("https://s3.fr-par.example", None, "https://s3.fr-par.example/bra-bucket/vanoise%202024.pdf"),
            ("https://s3.fr-par.example", "https://cdn.example/", "https://cdn.example/vanoise%202024.pdf"),
        ],
    )
    def test_public_url(self, endpoint: str, public_base, expected: str) -> None:
        storage = ObjectStorage(bucket="bra-bucket", endpoint_url=endpoint, public_base_url=public_base or "")
        assert storage.public_url("vanoise 2024.pdf") == expected


class TestUpload:
    @pytest.mark.unit
    async def test_upload_is_public_pdf(self, tmp_path) -> None:
        client = MagicMock()
        storage = ObjectStorage(bucket="bra-bucket", endpoint_url="", public_base_url="", client=client)
        path = tmp_path / "vanoise.pdf"
        path.write_bytes(b"%PDF-1.4")

        url = await storage.upload_file(str(path), "vanoise_2024-01-02T0600_risk3.pdf")

        assert url == "https://bra-bucket.s3.amazonaws.com/vanoise_2024-01-02T0600_risk3.pdf"
        client.upload_file.assert_called_once_with(
            str(path),
            "bra-bucket",
            "vanoise_2024-01-02T0600_risk3.pdf",
            ExtraArgs={"ContentType": "application/pdf", "ACL": "public-read"},
        )

    @pytest.mark.unit
    async def test_client_error_becomes_storage_error(self, tmp_path) -> None:
        client = MagicMock()
        client.upload_file.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )
        storage = ObjectStorage(bucket="bra-bucket", endpoint_url="", public_base_url="", client=client)

        with pytest.raises(StorageError) as exc_info:
            await storage.upload_file(str(tmp_path / "x.pdf"), "x.pdf")

        assert exc_info.value.details["key"] == "x.pdf"
        assert exc_info.value.status_code == 503
