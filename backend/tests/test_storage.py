"""Tests for the storage backends and backend selection."""

import base64
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from pki.storage import create_backend
from pki.storage.base import (
    CA_CERTIFICATE_FIELD,
    CA_KEY_FIELD,
    SERIAL_NUMBER_FIELD,
    RecordNotFoundError,
    StorageError,
)
from pki.storage.cluster import resolve_namespace
from pki.storage.kubernetes import KubernetesSecretBackend
from pki.storage.local import LocalFileBackend
from shared.config import Settings


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _secret(data: dict[str, bytes]) -> client.V1Secret:
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name="wirepact-pki-ca", resource_version="1234"),
        data={key: _b64(value) for key, value in data.items()},
    )


class TestLocalFileBackend:
    """Tests for LocalFileBackend."""

    def test_missing_directory_does_not_exist(self, local_backend):
        assert local_backend.exists() is False

    def test_read_missing_record_raises(self, local_backend):
        with pytest.raises(RecordNotFoundError):
            local_backend.read()

    def test_create_writes_files(self, local_backend):
        local_backend.create({SERIAL_NUMBER_FIELD: b"0"})

        assert local_backend.exists() is True
        assert local_backend.path_for(SERIAL_NUMBER_FIELD).read_bytes() == b"0"
        assert not local_backend.path_for(CA_CERTIFICATE_FIELD).exists()

    def test_read_returns_present_fields(self, local_backend):
        local_backend.create({SERIAL_NUMBER_FIELD: b"3", CA_CERTIFICATE_FIELD: b"cert"})

        assert local_backend.read() == {SERIAL_NUMBER_FIELD: b"3", CA_CERTIFICATE_FIELD: b"cert"}

    def test_file_names(self, local_backend):
        local_backend.create(
            {SERIAL_NUMBER_FIELD: b"0", CA_CERTIFICATE_FIELD: b"c", CA_KEY_FIELD: b"k"}
        )

        names = sorted(path.name for path in local_backend.directory.iterdir())
        assert names == ["ca.crt", "ca.key", "serialnumbers"]

    def test_atomic_update_persists_mutation(self, local_backend):
        local_backend.create({SERIAL_NUMBER_FIELD: b"0"})

        def add_key(fields):
            fields[CA_KEY_FIELD] = b"key"
            return fields

        result = local_backend.atomic_update(add_key)

        assert result == {SERIAL_NUMBER_FIELD: b"0", CA_KEY_FIELD: b"key"}
        assert local_backend.path_for(CA_KEY_FIELD).read_bytes() == b"key"

    def test_unknown_field_raises(self, local_backend):
        with pytest.raises(StorageError, match="Unknown"):
            local_backend.create({"somethingElse": b"x"})

    def test_create_in_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            LocalFileBackend(blocker / "ca").create({SERIAL_NUMBER_FIELD: b"0"})


class TestKubernetesSecretBackend:
    """Tests for KubernetesSecretBackend against a mocked CoreV1Api."""

    @pytest.fixture
    def api(self):
        return MagicMock(spec=client.CoreV1Api)

    @pytest.fixture
    def backend(self, api):
        return KubernetesSecretBackend(api, "pki", "wirepact-pki-ca")

    def test_exists_false_on_404(self, api, backend):
        api.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")

        assert backend.exists() is False

    def test_exists_true(self, api, backend):
        api.read_namespaced_secret.return_value = _secret({SERIAL_NUMBER_FIELD: b"0"})

        assert backend.exists() is True
        api.read_namespaced_secret.assert_called_with(name="wirepact-pki-ca", namespace="pki")

    def test_api_error_raises_storage_error(self, api, backend):
        api.read_namespaced_secret.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(StorageError, match="403"):
            backend.exists()

    def test_read_missing_raises(self, api, backend):
        api.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(RecordNotFoundError):
            backend.read()

    def test_read_decodes_and_drops_empty(self, api, backend):
        api.read_namespaced_secret.return_value = _secret(
            {SERIAL_NUMBER_FIELD: b"5", CA_CERTIFICATE_FIELD: b""}
        )

        assert backend.read() == {SERIAL_NUMBER_FIELD: b"5"}

    def test_create_sets_annotation_and_data(self, api, backend):
        backend.create({SERIAL_NUMBER_FIELD: b"0"})

        body = api.create_namespaced_secret.call_args.kwargs["body"]
        assert api.create_namespaced_secret.call_args.kwargs["namespace"] == "pki"
        assert body.metadata.name == "wirepact-pki-ca"
        assert body.metadata.annotations == {"controlled-by": "wirepact-k8s-pki"}
        assert body.data == {SERIAL_NUMBER_FIELD: _b64(b"0")}

    def test_create_failure_raises(self, api, backend):
        api.create_namespaced_secret.side_effect = ApiException(status=409, reason="Conflict")

        with pytest.raises(StorageError, match="409"):
            backend.create({SERIAL_NUMBER_FIELD: b"0"})

    def test_atomic_update_replaces_unconditionally(self, api, backend):
        """Test that the replace carries no resourceVersion precondition."""
        api.read_namespaced_secret.return_value = _secret({SERIAL_NUMBER_FIELD: b"1"})

        def bump(fields):
            fields[SERIAL_NUMBER_FIELD] = b"2"
            return fields

        result = backend.atomic_update(bump)

        assert result == {SERIAL_NUMBER_FIELD: b"2"}
        kwargs = api.replace_namespaced_secret.call_args.kwargs
        assert kwargs["name"] == "wirepact-pki-ca"
        assert kwargs["namespace"] == "pki"
        assert kwargs["body"].metadata.resource_version is None
        assert kwargs["body"].data == {SERIAL_NUMBER_FIELD: _b64(b"2")}

    def test_atomic_update_write_failure_raises(self, api, backend):
        api.read_namespaced_secret.return_value = _secret({SERIAL_NUMBER_FIELD: b"1"})
        api.replace_namespaced_secret.side_effect = ApiException(status=500, reason="Boom")

        with pytest.raises(StorageError, match="Could not write"):
            backend.atomic_update(lambda fields: fields)

    def test_describe(self, backend):
        assert backend.describe() == "pki/wirepact-pki-ca"


class TestResolveNamespace:
    """Tests for namespace resolution priority."""

    def test_downward_api_file_wins(self, tmp_path, monkeypatch):
        namespace_file = tmp_path / "namespace"
        namespace_file.write_text("from-file\n")
        monkeypatch.setenv("POD_NAMESPACE", "from-env")

        assert resolve_namespace(namespace_file) == "from-file"

    def test_env_before_kubeconfig(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POD_NAMESPACE", "from-env")

        with patch("pki.storage.cluster._kubeconfig_namespace", return_value="from-kubeconfig"):
            assert resolve_namespace(tmp_path / "missing") == "from-env"

    def test_kubeconfig_namespace(self, tmp_path, monkeypatch):
        monkeypatch.delenv("POD_NAMESPACE", raising=False)

        with patch("pki.storage.cluster._kubeconfig_namespace", return_value="from-kubeconfig"):
            assert resolve_namespace(tmp_path / "missing") == "from-kubeconfig"

    def test_defaults_to_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("POD_NAMESPACE", raising=False)

        with patch("pki.storage.cluster._kubeconfig_namespace", return_value=None):
            assert resolve_namespace(tmp_path / "missing") == "default"


class TestCreateBackend:
    """Tests for selecting the backend variant from settings."""

    def test_local_mode(self, tmp_path):
        settings = Settings(PKI_LOCAL_MODE=True, PKI_LOCAL_PATH=str(tmp_path))

        backend = create_backend(settings)

        assert isinstance(backend, LocalFileBackend)
        assert backend.directory == tmp_path

    def test_kubernetes_mode(self):
        settings = Settings(PKI_LOCAL_MODE=False, PKI_SECRET_NAME="my-ca", PKI_NAMESPACE="ns")

        with patch("pki.storage.cluster.load_core_api") as mock_load:
            backend = create_backend(settings)

        assert isinstance(backend, KubernetesSecretBackend)
        assert backend.namespace == "ns"
        assert backend.secret_name == "my-ca"
        mock_load.assert_called_once()

    def test_kubernetes_config_failure_raises_storage_error(self):
        settings = Settings(PKI_LOCAL_MODE=False)

        with patch("pki.storage.cluster.load_core_api", side_effect=RuntimeError("no config")):
            with pytest.raises(StorageError, match="no config"):
                create_backend(settings)
