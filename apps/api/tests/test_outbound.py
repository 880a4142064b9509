"""
Tests for outbound email (Resend) and the object storage client.

Resend HTTP is served by ``httpx.MockTransport``; the Supabase client is a mock.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from byggportal.core.email import build_invite_url, send_invitation_email
from byggportal.core.errors import ExternalServiceError, ServiceNotConfiguredError
from byggportal.core.storage import (
    StorageClient,
    build_object_path,
    clean_file_name,
    path_from_public_url,
)

RealAsyncClient = httpx.AsyncClient


def mock_http(handler):
    """Patch httpx.AsyncClient so every request goes to ``handler``."""

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return RealAsyncClient(*args, **kwargs)

    return patch("httpx.AsyncClient", side_effect=factory)


class TestInvitationEmail:
    """Tests for send_invitation_email."""

    async def test_sends_via_resend(self) -> None:
        """Test the request sent to Resend."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "msg_123"})

        with patch("byggportal.core.email.settings.resend_api_key", "re_test"), mock_http(handler):
            message_id = await send_invitation_email(
                to="ny@example.se",
                token="abc123",
                project_name="Kv. Eken",
                inviter_name="Anna",
                role_name="Medlem",
            )

        assert message_id == "msg_123"
        assert requests[0].headers["Authorization"] == "Bearer re_test"
        body = json.loads(requests[0].content)
        assert body["to"] == ["ny@example.se"]
        assert body["subject"] == "Du har bjudits in till Kv. Eken"
        assert build_invite_url("abc123") in body["text"]
        assert "Anna" in body["html"]

    async def test_provider_error(self) -> None:
        """Test that a rejected message raises."""
        with patch("byggportal.core.email.settings.resend_api_key", "re_test"), mock_http(
            lambda request: httpx.Response(422, json={"message": "invalid"})
        ):
            with pytest.raises(ExternalServiceError):
                await send_invitation_email("ny@example.se", "t", "P", "A", "Medlem")

    async def test_not_configured(self) -> None:
        """Test that mail without an API key is reported."""
        with patch("byggportal.core.email.settings.resend_api_key", None):
            with pytest.raises(ServiceNotConfiguredError):
                await send_invitation_email("ny@example.se", "t", "P", "A", "Medlem")

    def test_invite_url(self) -> None:
        """Test the accept link."""
        with patch("byggportal.core.email.settings.app_url", "https://app.example.se/"):
            assert build_invite_url("tok") == "https://app.example.se/invite/tok"


class TestStorage:
    """Tests for the storage client, with the Supabase client mocked."""

    @pytest.fixture
    def supabase(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def bucket(self, supabase) -> MagicMock:
        return supabase.storage.from_.return_value

    @pytest.fixture
    def storage(self, supabase) -> StorageClient:
        return StorageClient(client=supabase)

    def test_clean_file_name(self) -> None:
        """Test that unsafe characters are replaced."""
        assert clean_file_name("Ritning plan 2 (rev B).pdf") == "Ritning_plan_2__rev_B_.pdf"

    def test_object_path(self) -> None:
        """Test the project-scoped object path."""
        path = build_object_path("p1", "a b.pdf", subfolder="protocols/x")
        assert path.startswith("p1/protocols/x/")
        assert path.endswith("_a_b.pdf")

    def test_path_from_public_url(self) -> None:
        """Test reading the object path back out of a public URL."""
        url = "https://sb.example/storage/v1/object/public/avatars/u1/1_jag%20bild.png"
        assert path_from_public_url(url, "avatars") == "u1/1_jag bild.png"
        assert path_from_public_url(url, "protocol-attachments") is None
        assert path_from_public_url("https://cdn.example/jag.png", "avatars") is None

    async def test_upload(self, storage, supabase, bucket) -> None:
        """Test the upload call."""
        path = await storage.upload("bucket", "p1/a.pdf", b"data", "application/pdf")

        assert path == "p1/a.pdf"
        supabase.storage.from_.assert_called_with("bucket")
        bucket.upload.assert_called_once_with(
            "p1/a.pdf",
            b"data",
            {"content-type": "application/pdf", "cache-control": "3600", "upsert": "false"},
        )

    async def test_upload_failure(self, storage, bucket) -> None:
        """Test that a storage error surfaces as an external service error."""
        bucket.upload.side_effect = RuntimeError("Duplicate")
        with pytest.raises(ExternalServiceError):
            await storage.upload("bucket", "p1/a.pdf", b"data")

    async def test_signed_url(self, storage, bucket) -> None:
        """Test that the signed URL is returned."""
        bucket.create_signed_url.return_value = {
            "signedURL": "https://sb.example/storage/v1/object/sign/b/p?token=t"
        }

        url = await storage.create_signed_url("b", "p", expires_in=60)

        assert url == "https://sb.example/storage/v1/object/sign/b/p?token=t"
        bucket.create_signed_url.assert_called_once_with("p", 60)

    async def test_signed_url_missing(self, storage, bucket) -> None:
        """Test that an empty signing response is an error."""
        bucket.create_signed_url.return_value = {}
        with pytest.raises(ExternalServiceError):
            await storage.create_signed_url("b", "p")

    async def test_delete(self, storage, bucket) -> None:
        """Test that objects are removed by path."""
        await storage.delete("bucket", "p1/a.pdf")
        bucket.remove.assert_called_once_with(["p1/a.pdf"])

    def test_public_url(self, storage, bucket) -> None:
        """Test the public URL of an object in a public bucket."""
        bucket.get_public_url.return_value = (
            "https://sb.example/storage/v1/object/public/avatars/u1/1_jag.png?"
        )
        assert (
            storage.public_url("avatars", "u1/1_jag.png")
            == "https://sb.example/storage/v1/object/public/avatars/u1/1_jag.png"
        )

    async def test_not_configured(self) -> None:
        """Test that a client without URL or key refuses to work."""
        with patch("byggportal.core.storage.settings.storage_url", None):
            storage = StorageClient(service_key="service-key")
            with pytest.raises(ServiceNotConfiguredError):
                await storage.upload("bucket", "p", b"x")
