"""End-to-end tests for the HTTP surface with in-memory stores and fakes."""

import pytest
from fastapi.testclient import TestClient

from facelocker import dependencies
from facelocker.main import app
from facelocker.services.audit import AuditLog
from facelocker.services.capture import CaptureSessions
from facelocker.services.credentials import CredentialVerifier
from facelocker.services.otp_service import OtpService
from facelocker.services.references import ReferenceImageStore
from facelocker.services.registration import RegistrationFlows


@pytest.fixture
def client(documents, identity, otp_store, dispatcher, detector, fake_camera):
    otp = OtpService(otp_store, dispatcher)
    flows = RegistrationFlows()
    audit = AuditLog(documents)
    sessions = CaptureSessions()

    app.dependency_overrides = {
        dependencies.get_document_store: lambda: documents,
        dependencies.get_identity_provider: lambda: identity,
        dependencies.get_otp_service: lambda: otp,
        dependencies.get_registration_flows: lambda: flows,
        dependencies.get_credential_verifier: lambda: CredentialVerifier(documents),
        dependencies.get_reference_store: lambda: ReferenceImageStore(documents),
        dependencies.get_audit_log: lambda: audit,
        dependencies.get_capture_sessions: lambda: sessions,
        dependencies.get_camera: lambda: fake_camera(["valid"], payload_size=100),
        dependencies.get_detector: lambda: detector,
    }
    yield TestClient(app)
    app.dependency_overrides = {}


def register(client, form):
    response = client.post("/auth/register", json=form)
    assert response.status_code == 200, response.text
    return response.json()


def activate(client, otp_store, registration):
    code = otp_store.get("alex@example.com").code
    return client.post(
        "/auth/activate",
        json={"flow_id": registration["flow_id"], "otp": code},
        headers={"Authorization": f"Bearer {registration['session_token']}"},
    )


def login(client):
    response = client.post("/auth/login", json={"email": "alex@example.com", "password": "login-secret-1"})
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:
    def test_health_reports_audit_failures(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "audit_failures": 0}


class TestRegisterAndActivate:
    def test_register_sends_otp(self, client, registration_form, dispatcher):
        body = register(client, registration_form)

        assert body["message"] == "OTP sent to alex@example.com"
        assert body["uid"]
        assert len(dispatcher.sent) == 1

    def test_invalid_form_is_422(self, client, registration_form, dispatcher):
        registration_form["mobile"] = "12"
        response = client.post("/auth/register", json=registration_form)
        assert response.status_code == 422
        assert dispatcher.sent == []

    def test_full_activation(self, client, registration_form, otp_store):
        registration = register(client, registration_form)

        response = activate(client, otp_store, registration)

        assert response.status_code == 200
        assert response.json()["uid"] == registration["uid"]
        assert login(client)["uid"] == registration["uid"]

    def test_wrong_otp_reports_outcome(self, client, registration_form, otp_store):
        registration = register(client, registration_form)
        code = otp_store.get("alex@example.com").code
        wrong = "111111" if code != "111111" else "222222"

        response = client.post(
            "/auth/activate",
            json={"flow_id": registration["flow_id"], "otp": wrong},
            headers={"Authorization": f"Bearer {registration['session_token']}"},
        )

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid OTP", "outcome": "mismatch", "can_resend": True}
        assert activate(client, otp_store, registration).status_code == 200

    def test_malformed_otp_is_422_and_flow_survives(self, client, registration_form, otp_store):
        registration = register(client, registration_form)

        response = client.post(
            "/auth/activate",
            json={"flow_id": registration["flow_id"], "otp": "12345"},
            headers={"Authorization": f"Bearer {registration['session_token']}"},
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "OTP must be 6 digits"
        assert activate(client, otp_store, registration).status_code == 200

    def test_activation_without_session_abandons_flow(self, client, registration_form, otp_store):
        registration = register(client, registration_form)
        code = otp_store.get("alex@example.com").code

        response = client.post("/auth/activate", json={"flow_id": registration["flow_id"], "otp": code})
        assert response.status_code == 401

        retry = activate(client, otp_store, registration)
        assert retry.status_code == 404

    def test_unknown_flow(self, client):
        response = client.post("/auth/activate", json={"flow_id": "nope", "otp": "123456"})
        assert response.status_code == 404
        assert response.json()["detail"] == "No registration data. Please register again."

    def test_resend_inside_window_is_429(self, client, registration_form):
        registration = register(client, registration_form)

        response = client.post("/auth/resend-otp", json={"flow_id": registration["flow_id"]})

        assert response.status_code == 429
        body = response.json()
        assert 1 <= body["retry_after"] <= 60
        assert "expires_at" in body

    def test_delivery_failure_is_502(self, client, registration_form, dispatcher):
        dispatcher.fail = True
        response = client.post("/auth/register", json=registration_form)
        assert response.status_code == 502
        assert response.json()["can_resend"] is True

    def test_login_before_activation_is_403(self, client, registration_form):
        register(client, registration_form)
        response = client.post("/auth/login", json={"email": "alex@example.com", "password": "login-secret-1"})
        assert response.status_code == 403

    def test_login_wrong_password(self, client):
        response = client.post("/auth/login", json={"email": "alex@example.com", "password": "wrong-secret"})
        assert response.status_code == 401


class TestLockerVerify:
    def test_match_and_mismatch(self, client, registration_form, otp_store):
        registration = register(client, registration_form)
        activate(client, otp_store, registration)
        uid = registration["uid"]

        ok = client.post("/auth/locker/verify", json={"uid": uid, "locker_password": "482913"})
        bad = client.post("/auth/locker/verify", json={"uid": uid, "locker_password": "482914"})

        assert ok.json()["success"] is True
        assert bad.status_code == 200
        assert bad.json()["success"] is False

    def test_unknown_identity_is_404(self, client):
        response = client.post("/auth/locker/verify", json={"uid": "missing", "locker_password": "482913"})
        assert response.status_code == 404


class TestEnrollment:
    def test_requires_session(self, client):
        assert client.post("/enrollment/reference-images").status_code == 401
        assert client.get("/enrollment/reference-images").status_code == 401

    def test_capture_commits_reference_set(self, client, registration_form, otp_store):
        registration = register(client, registration_form)
        activate(client, otp_store, registration)
        headers = {"Authorization": f"Bearer {login(client)['access_token']}"}

        before = client.get("/enrollment/reference-images", headers=headers).json()
        response = client.post("/enrollment/reference-images", headers=headers)
        after = client.get("/enrollment/reference-images", headers=headers).json()

        assert before["frames"] == 0
        assert response.status_code == 200, response.text
        assert response.json()["outcome"] == "committed"
        assert response.json()["frames"] == 5
        assert after["frames"] == 5

    def test_cancel_without_running_session(self, client, registration_form, otp_store):
        registration = register(client, registration_form)
        activate(client, otp_store, registration)
        headers = {"Authorization": f"Bearer {login(client)['access_token']}"}

        response = client.delete("/enrollment/reference-images/session", headers=headers)

        assert response.json() == {"cancelled": False}
