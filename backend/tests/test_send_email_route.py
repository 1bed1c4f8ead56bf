"""
End-to-end tests for POST /api/send-email through the FastAPI app.

The transport session is mocked at the router (open_session), or the
aiosmtplib client is patched, so no SMTP connection is ever attempted.
Pacing is switched off via send_settings.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.config import SendSettings
from app.services.errors import TransportError

ENDPOINT = "/api/send-email"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _form(**overrides) -> dict:
    data = {
        "email": "me@gmail.com",
        "app_password": "abcd efgh ijkl mnop",
        "recipients": "a@x.com, b@x.com\nc@x.com",
        "subject": "Application: Platform Engineer",
        "body": "Hello,\n\nPlease find my resume attached.\n\nThanks",
    }
    data.update(overrides)
    return {k: v for k, v in data.items() if v is not None}


def _resume(content: bytes = b"%PDF-1.4 resume", name: str = "resume.pdf"):
    return ("resume", (name, content, "application/pdf"))


def _mock_session(fail_for: dict | None = None):
    """A session whose submit fails with TransportError for recipients in fail_for."""
    fail_for = fail_for or {}
    session = MagicMock()
    session.submitted = []

    async def submit(message):
        session.submitted.append(message)
        if message.to in fail_for:
            raise TransportError(fail_for[message.to])
        return "250 OK"

    session.submit = AsyncMock(side_effect=submit)
    session.close = AsyncMock()
    return session


@pytest.fixture()
def client():
    from app.main import app
    return TestClient(app)


@pytest.fixture()
def fast_settings():
    settings = SendSettings(send_timeout_ms=1000, pacing_ms=0, max_attachment_bytes=1024)
    with patch("app.routers.send_email.send_settings", settings):
        yield settings


@pytest.fixture()
def open_session_mock():
    with patch("app.routers.send_email.open_session", new_callable=AsyncMock) as mock_open:
        yield mock_open


# ---------------------------------------------------------------------------
# Successful and partially successful batches
# ---------------------------------------------------------------------------

class TestCompletedBatch:

    def test_all_recipients_sent(self, client, fast_settings, open_session_mock):
        session = _mock_session()
        open_session_mock.return_value = session

        response = client.post(ENDPOINT, data=_form(), files=[_resume()])

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["summary"] == {"total": 3, "successful": 3, "failed": 0}
        assert [r["recipient"] for r in body["results"]] == ["a@x.com", "b@x.com", "c@x.com"]
        assert all(r["status"] == "success" for r in body["results"])
        assert body["duration"].endswith("ms")

    def test_credentials_forwarded_to_transport(self, client, fast_settings, open_session_mock):
        open_session_mock.return_value = _mock_session()

        client.post(ENDPOINT, data=_form(), files=[_resume()])

        args = open_session_mock.await_args.args
        assert args[0] == "me@gmail.com"
        assert args[1] == "abcd efgh ijkl mnop"
        open_session_mock.assert_awaited_once()

    def test_one_failure_does_not_block_the_rest(self, client, fast_settings, open_session_mock):
        session = _mock_session(fail_for={"b@x.com": "550 5.1.1 No such user"})
        open_session_mock.return_value = session

        response = client.post(ENDPOINT, data=_form(), files=[_resume()])

        assert response.status_code == 200
        body = response.json()
        assert body["summary"] == {"total": 3, "successful": 2, "failed": 1}
        assert [r["status"] for r in body["results"]] == ["success", "failed", "success"]
        assert body["results"][1]["message"] == "550 5.1.1 No such user"
        assert body["message"] == "Sent 2 of 3 emails; 1 failed"

    def test_session_closed_exactly_once(self, client, fast_settings, open_session_mock):
        session = _mock_session(fail_for={"a@x.com": "boom"})
        open_session_mock.return_value = session

        client.post(ENDPOINT, data=_form(), files=[_resume()])

        session.close.assert_awaited_once()

    def test_attachments_resume_first_and_empty_extras_dropped(self, client, fast_settings, open_session_mock):
        session = _mock_session()
        open_session_mock.return_value = session

        files = [
            _resume(name="cv.pdf"),
            ("attachments", ("cover.txt", b"cover letter", "text/plain")),
            ("attachments", ("empty.txt", b"", "text/plain")),
            ("attachments", ("refs.pdf", b"refs", "application/pdf")),
        ]
        response = client.post(ENDPOINT, data=_form(recipients="a@x.com"), files=files)

        assert response.status_code == 200
        sent = session.submitted[0]
        assert [a.filename for a in sent.attachments] == ["cv.pdf", "cover.txt", "refs.pdf"]

    def test_extras_without_resume_accepted(self, client, fast_settings, open_session_mock):
        open_session_mock.return_value = _mock_session()

        files = [("attachments", ("portfolio.pdf", b"portfolio", "application/pdf"))]
        response = client.post(ENDPOINT, data=_form(recipients="a@x.com"), files=files)

        assert response.status_code == 200

    def test_named_empty_resume_not_attached(self, client, fast_settings, open_session_mock):
        session = _mock_session()
        open_session_mock.return_value = session

        files = [
            _resume(content=b"", name="cv.pdf"),
            ("attachments", ("cover.txt", b"cover", "text/plain")),
        ]
        response = client.post(ENDPOINT, data=_form(recipients="a@x.com"), files=files)

        assert response.status_code == 200
        sent = session.submitted[0]
        assert [(a.filename, a.size) for a in sent.attachments] == [("cover.txt", 5)]

    def test_subject_with_line_breaks_still_sent(self, client, fast_settings):
        smtp_client = MagicMock()
        smtp_client.connect = AsyncMock()
        smtp_client.login = AsyncMock()
        smtp_client.send_message = AsyncMock(return_value=({}, "2.0.0 OK queued"))
        smtp_client.quit = AsyncMock()

        with patch("app.services.smtp_transport.aiosmtplib.SMTP", return_value=smtp_client):
            response = client.post(
                ENDPOINT,
                data=_form(recipients="a@x.com", subject="Application\r\nfor role"),
                files=[_resume()],
            )

        assert response.status_code == 200
        assert response.json()["summary"] == {"total": 1, "successful": 1, "failed": 0}
        sent = smtp_client.send_message.await_args.args[0]
        assert sent["Subject"] == "Application for role"
        smtp_client.quit.assert_awaited_once()

    def test_duplicate_recipients_sent_once(self, client, fast_settings, open_session_mock):
        session = _mock_session()
        open_session_mock.return_value = session

        response = client.post(
            ENDPOINT, data=_form(recipients="a@x.com,a@x.com\nb@x.com"), files=[_resume()]
        )

        assert response.json()["summary"]["total"] == 2
        assert [m.to for m in session.submitted] == ["a@x.com", "b@x.com"]


# ---------------------------------------------------------------------------
# Validation failures (400, no transport session opened)
# ---------------------------------------------------------------------------

class TestValidationFailures:

    @pytest.mark.parametrize("missing", ["subject", "body", "email", "app_password", "recipients"])
    def test_missing_field(self, client, fast_settings, open_session_mock, missing):
        response = client.post(ENDPOINT, data=_form(**{missing: None}), files=[_resume()])

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}
        open_session_mock.assert_not_awaited()

    @pytest.mark.parametrize("raw", ["   ", ", , ,", "\n,\n"])
    def test_no_recipients(self, client, fast_settings, open_session_mock, raw):
        response = client.post(ENDPOINT, data=_form(recipients=raw), files=[_resume()])

        assert response.status_code == 400
        assert "error" in response.json()
        open_session_mock.assert_not_awaited()

    def test_malformed_recipient(self, client, fast_settings, open_session_mock):
        response = client.post(ENDPOINT, data=_form(recipients="a@x.com, bogus"), files=[_resume()])

        assert response.status_code == 400
        assert "bogus" in response.json()["error"]
        open_session_mock.assert_not_awaited()

    def test_no_attachment(self, client, fast_settings, open_session_mock):
        response = client.post(ENDPOINT, data=_form())

        assert response.status_code == 400
        assert response.json() == {"error": "Resume file is missing"}
        open_session_mock.assert_not_awaited()

    def test_attachments_exactly_at_ceiling_pass(self, client, fast_settings, open_session_mock):
        open_session_mock.return_value = _mock_session()

        files = [
            _resume(b"r" * 1000),
            ("attachments", ("extra.bin", b"e" * 24, "application/octet-stream")),
        ]
        response = client.post(ENDPOINT, data=_form(recipients="a@x.com"), files=files)

        assert response.status_code == 200

    def test_attachments_one_byte_over_ceiling_fail(self, client, fast_settings, open_session_mock):
        files = [
            _resume(b"r" * 1000),
            ("attachments", ("extra.bin", b"e" * 25, "application/octet-stream")),
        ]
        response = client.post(ENDPOINT, data=_form(recipients="a@x.com"), files=files)

        assert response.status_code == 400
        assert response.json() == {"error": "Total attachment size exceeds limit"}
        open_session_mock.assert_not_awaited()


# ---------------------------------------------------------------------------
# Request-level failures (500)
# ---------------------------------------------------------------------------

class TestServerErrors:

    def test_login_rejected(self, client, fast_settings, open_session_mock):
        open_session_mock.side_effect = TransportError(
            "SMTP authentication failed for me@gmail.com: 535 5.7.8 Username and Password not accepted"
        )

        response = client.post(ENDPOINT, data=_form(), files=[_resume()])

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert "authentication failed" in body["message"]
        assert body["duration"].endswith("ms")

    def test_unreadable_attachment_fails_before_connecting(self, client, fast_settings, open_session_mock):
        with patch("app.routers.send_email.assemble_attachments", new_callable=AsyncMock) as assemble:
            from app.services.errors import AttachmentReadError

            assemble.side_effect = AttachmentReadError("resume.pdf", OSError("stream truncated"))
            response = client.post(ENDPOINT, data=_form(), files=[_resume()])

        assert response.status_code == 500
        assert "resume.pdf" in response.json()["message"]
        open_session_mock.assert_not_awaited()

    def test_unexpected_error_mid_batch_still_closes_session(self, client, fast_settings, open_session_mock):
        session = _mock_session()
        session.submit = AsyncMock(side_effect=RuntimeError("connection state lost"))
        open_session_mock.return_value = session

        response = client.post(ENDPOINT, data=_form(), files=[_resume()])

        assert response.status_code == 500
        assert response.json()["message"] == "connection state lost"
        session.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# Other methods
# ---------------------------------------------------------------------------

class TestMethodNotAllowed:

    @pytest.mark.parametrize("method", ["get", "put", "patch", "delete"])
    def test_non_post_returns_405(self, client, method):
        response = getattr(client, method)(ENDPOINT)

        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}
