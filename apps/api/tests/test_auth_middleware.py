"""Authentication dependency and adapter tests."""

from __future__ import annotations

import os
import sys
import types
import unittest
from unittest.mock import patch

from fastapi import Request
from fastapi.testclient import TestClient

from app.adapters.auth.base import AuthVerificationError
from app.adapters.auth.firebase_auth import FirebaseTokenVerifier
from app.adapters.auth.mock_auth import MockTokenVerifier
from app.core.config import Settings, get_settings
from app.main import create_app
from app.routes.dependencies import get_job_coordinator, get_token_verifier
from app.schemas.job import CreateJobRequest, CreateJobResponse

_JOB_BODY = {"audio_ref": "gs://bucket/song.mp3", "audio_duration_seconds": 16.0}


class _CapturingCoordinator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, CreateJobRequest]] = []

    def create_job(self, *, owner_id: str, request: CreateJobRequest) -> CreateJobResponse:
        self.calls.append((owner_id, request))
        return CreateJobResponse(job_id="job-1", total_segments=2)


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "CADENCE_AUTH_PROVIDER",
        "CADENCE_SCHEDULER_ENABLED",
        "CADENCE_FIREBASE_PROJECT_ID",
        "CADENCE_FIREBASE_AUDIENCE",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["CADENCE_AUTH_PROVIDER"] = "mock"
        os.environ["CADENCE_SCHEDULER_ENABLED"] = "false"
        os.environ["CADENCE_FIREBASE_PROJECT_ID"] = "test-project"
        os.environ["CADENCE_FIREBASE_AUDIENCE"] = "test-audience"
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class AuthApiTests(_SettingsEnvCase):
    def test_openapi_includes_job_paths_and_contract_response_codes(self) -> None:
        app = create_app()
        client = TestClient(app)

        response = client.get("/openapi.json")
        self.assertEqual(response.status_code, 200)
        paths = response.json()["paths"]

        self.assertEqual(set(paths["/api/v1/jobs"]["post"]["responses"].keys()), {"201", "400", "401", "403"})
        self.assertEqual(set(paths["/api/v1/jobs/{jobId}"]["get"]["responses"].keys()), {"200", "401", "404"})
        self.assertEqual(
            paths["/api/v1/jobs/{jobId}"]["get"]["responses"]["404"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/NoLeakNotFoundError",
        )
        self.assertIn("post", paths["/api/v1/jobs/{jobId}/status"])
        self.assertEqual(
            paths["/api/v1/jobs/{jobId}/finalize"]["post"]["responses"]["409"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/FinalizeConflictError",
        )
        self.assertEqual(
            paths["/api/v1/segments/{segmentId}/retry"]["post"]["responses"]["409"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/SegmentStateConflictError",
        )
        self.assertIn("/api/v1/segments/{segmentId}/skip", paths)
        self.assertIn("/api/v1/jobs/{jobId}/cancel", paths)

    def test_missing_authorization_header_returns_401_and_no_job_side_effect(self) -> None:
        app = create_app()
        client = TestClient(app)

        response = client.post("/api/v1/jobs", json=_JOB_BODY)

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(app.state.store.job_write_count, 0)

    def test_invalid_bearer_token_returns_401_and_no_job_side_effect(self) -> None:
        app = create_app()
        client = TestClient(app)

        response = client.post(
            "/api/v1/jobs",
            headers={"Authorization": "Bearer not-a-valid-token"},
            json=_JOB_BODY,
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(app.state.store.job_write_count, 0)
        self.assertEqual(app.state.store.segment_write_count, 0)

    def test_segment_commands_require_authentication(self) -> None:
        app = create_app()
        client = TestClient(app)

        for path in ("/api/v1/segments/seg-1/retry", "/api/v1/segments/seg-1/skip", "/api/v1/jobs/job-1/cancel"):
            with self.subTest(path=path):
                response = client.post(path)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_valid_bearer_token_resolves_user_id_for_downstream_handler(self) -> None:
        app = create_app()
        client = TestClient(app)

        capturing = _CapturingCoordinator()
        app.dependency_overrides[get_job_coordinator] = lambda: capturing

        response = client.post(
            "/api/v1/jobs",
            headers={"Authorization": "Bearer test:user-123"},
            json=_JOB_BODY,
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json(), {"job_id": "job-1", "total_segments": 2})
        self.assertEqual(len(capturing.calls), 1)
        self.assertEqual(capturing.calls[0][0], "user-123")
        self.assertEqual(capturing.calls[0][1].audio_ref, "gs://bucket/song.mp3")

    def test_auth_principal_is_attached_to_request_state(self) -> None:
        app = create_app()
        client = TestClient(app)

        capturing = _CapturingCoordinator()
        observed: dict[str, str] = {}

        def _override_coordinator(request: Request) -> _CapturingCoordinator:
            observed["user_id"] = request.state.auth_principal.user_id
            observed["correlation_id"] = request.state.correlation_id
            return capturing

        app.dependency_overrides[get_job_coordinator] = _override_coordinator

        response = client.post(
            "/api/v1/jobs",
            headers={"Authorization": "Bearer test:user-state", "X-Correlation-Id": "corr-42"},
            json=_JOB_BODY,
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(observed.get("user_id"), "user-state")
        self.assertEqual(observed.get("correlation_id"), "corr-42")


class AuthAdapterUnitTests(unittest.TestCase):
    def test_mock_token_verifier_normalizes_principal(self) -> None:
        verifier = MockTokenVerifier()

        principal = verifier.verify_token("test:user-999:admin")
        default_role = verifier.verify_token("test:user-1")

        self.assertEqual(principal.user_id, "user-999")
        self.assertEqual(principal.role, "admin")
        self.assertEqual(default_role.role, "creator")

    def test_mock_token_verifier_rejects_invalid_token(self) -> None:
        verifier = MockTokenVerifier()

        cases = {
            "invalid": "malformed_token",
            "test:": "malformed_token",
            "other:user-1": "malformed_token",
            "test:a:b:c": "malformed_token",
            "test: :admin": "missing_identity",
        }
        for token, reason in cases.items():
            with self.subTest(token=token):
                with self.assertRaises(AuthVerificationError) as context:
                    verifier.verify_token(token)
                self.assertEqual(context.exception.reason, reason)

    def test_dependency_selects_verifier_from_settings(self) -> None:
        firebase = get_token_verifier(
            Settings(auth_provider="firebase", firebase_project_id="project-a", firebase_audience="aud-a")
        )
        mock = get_token_verifier(Settings(auth_provider="mock"))

        self.assertIsInstance(firebase, FirebaseTokenVerifier)
        self.assertIsInstance(mock, MockTokenVerifier)


class FirebaseVerifierUnitTests(unittest.TestCase):
    @staticmethod
    def _fake_firebase_modules(decoded_token: dict[str, str]) -> dict[str, types.ModuleType]:
        fake_admin = types.ModuleType("firebase_admin")
        fake_auth = types.ModuleType("firebase_admin.auth")

        fake_admin._apps = []

        def initialize_app() -> object:
            app_handle = object()
            fake_admin._apps.append(app_handle)
            return app_handle

        def verify_id_token(token: str, check_revoked: bool = True) -> dict[str, str]:
            if token != "valid-jwt":
                raise ValueError("invalid token")
            if not check_revoked:
                raise ValueError("must validate revoked tokens")
            return decoded_token

        fake_admin.initialize_app = initialize_app
        fake_admin.auth = fake_auth
        fake_auth.verify_id_token = verify_id_token

        return {
            "firebase_admin": fake_admin,
            "firebase_admin.auth": fake_auth,
        }

    def test_firebase_verifier_defaults_role_to_creator(self) -> None:
        fake_modules = self._fake_firebase_modules(
            {
                "uid": "firebase-user-1",
                "aud": "aud-a",
                "iss": "https://securetoken.google.com/project-a",
            }
        )

        with patch.dict(sys.modules, fake_modules):
            verifier = FirebaseTokenVerifier(project_id="project-a", audience="aud-a")
            principal = verifier.verify_token("valid-jwt")

        self.assertEqual(principal.user_id, "firebase-user-1")
        self.assertEqual(principal.role, "creator")

    def test_firebase_verifier_rejects_invalid_audience_and_token(self) -> None:
        fake_modules = self._fake_firebase_modules(
            {
                "uid": "firebase-user-1",
                "aud": "unexpected-aud",
                "iss": "https://securetoken.google.com/project-a",
            }
        )

        with patch.dict(sys.modules, fake_modules):
            verifier = FirebaseTokenVerifier(project_id="project-a", audience="aud-a")
            with self.assertRaises(AuthVerificationError) as audience_error:
                verifier.verify_token("valid-jwt")
            with self.assertRaises(AuthVerificationError) as forged_error:
                verifier.verify_token("forged-jwt")

        self.assertEqual(audience_error.exception.reason, "audience_mismatch")
        self.assertEqual(forged_error.exception.reason, "signature_or_revocation")


if __name__ == "__main__":
    unittest.main()
