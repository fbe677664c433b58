"""
End-to-end tests for SecurityContext initialization.
"""
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

from asyncua import ua
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

from opcua_identity.core.config import OpcUaSettings, UserCredentials
from opcua_identity.core.errors import ConfigurationError, RepositoryAccessError
from opcua_identity.keystore import CredentialRepository
from opcua_identity.network import NetworkIdentity
from opcua_identity.policy import SecurityPolicy
from opcua_identity.security import SecurityContext


def make_context(security_dir, policy="Basic256Sha256", password="s3cret"):
    settings = OpcUaSettings(
        _env_file=None,
        security_policy=policy,
        security_dir=str(security_dir),
        user_credentials=UserCredentials(user_pass=password),
    )
    discoverer = Mock()
    discoverer.discover.return_value = {NetworkIdentity.from_value("127.0.0.1")}
    return SecurityContext(settings, CredentialRepository(settings, discoverer=discoverer))


class TestSecurityContext(unittest.TestCase):
    """Test cases for SecurityContext."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.security_dir = Path(self._tmp.name) / "security"

    def test_basic256sha256_creates_sha256_2048_identity(self):
        context = make_context(self.security_dir)
        state = context.initialize()

        self.assertTrue(state.available)
        self.assertFalse(state.degraded)
        self.assertIs(context.security_policy, SecurityPolicy.BASIC256SHA256)

        cert = context.get_client_certificate()
        self.assertIsInstance(cert.signature_hash_algorithm, hashes.SHA256)
        self.assertEqual(context.get_client_key_pair().public_key.key_size, 2048)
        self.assertEqual(cert.public_key().public_numbers(), context.get_client_key_pair().public_key.public_numbers())

        uris = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value.get_values_for_type(
            x509.UniformResourceIdentifier
        )
        self.assertEqual(uris, [context.application_uri])

    def test_unconfigured_policy_skips_setup(self):
        context = make_context(self.security_dir, policy="")
        state = context.initialize()

        self.assertIsNone(state.policy)
        self.assertIsNone(context.get_client_certificate())
        self.assertIsNone(context.get_client_key_pair())
        self.assertFalse(state.degraded)
        self.assertFalse(self.security_dir.exists())

    def test_none_policy_skips_setup(self):
        context = make_context(self.security_dir, policy="None")
        state = context.initialize()

        self.assertIs(state.policy, SecurityPolicy.NONE)
        self.assertFalse(state.available)
        self.assertFalse(state.degraded)
        self.assertFalse(self.security_dir.exists())

    def test_wrong_password_degrades(self):
        make_context(self.security_dir).initialize()

        context = make_context(self.security_dir, password="wrong")
        with self.assertLogs("opcua_identity.security", level="ERROR"):
            state = context.initialize()

        self.assertIsInstance(state.error, RepositoryAccessError)
        self.assertTrue(state.degraded)
        self.assertIsNone(context.get_client_certificate())

    def test_missing_security_dir_degrades(self):
        context = make_context("")
        with self.assertLogs("opcua_identity.security", level="ERROR"):
            state = context.initialize()
        self.assertIsInstance(state.error, ConfigurationError)
        self.assertIsNone(context.get_client_key_pair())

    def test_unset_private_key_entry_degrades(self):
        repository = Mock()
        repository.load_or_create.return_value = None
        context = SecurityContext(OpcUaSettings(_env_file=None, security_policy="Basic256"), repository)

        state = context.initialize()
        self.assertIsNone(state.error)
        self.assertTrue(state.degraded)
        self.assertFalse(state.available)

    def test_initialize_runs_once(self):
        repository = Mock()
        repository.load_or_create.side_effect = RepositoryAccessError("corrupt")
        context = SecurityContext(OpcUaSettings(_env_file=None, security_policy="Basic256"), repository)

        with self.assertLogs("opcua_identity.security", level="ERROR"):
            first = context.initialize()
        second = context.initialize()

        self.assertIs(first, second)
        repository.load_or_create.assert_called_once_with(SecurityPolicy.BASIC256)

    def test_encoded_credential(self):
        context = make_context(self.security_dir)
        cert = x509.load_der_x509_certificate(context.certificate_bytes())
        key = serialization.load_pem_private_key(context.private_key_bytes(), password=None)

        self.assertEqual(cert, context.get_client_certificate())
        self.assertEqual(key.private_numbers(), context.get_client_key_pair().private_key.private_numbers())

    def test_encoded_credential_unset(self):
        context = make_context(self.security_dir, policy="")
        self.assertIsNone(context.certificate_bytes())
        self.assertIsNone(context.private_key_bytes())

    def test_application_identity(self):
        with patch("opcua_identity.identity.socket.gethostname", return_value="plc-gw"):
            context = make_context(self.security_dir, policy="")
        self.assertEqual(context.application_name, "OPC-UA Client@plc-gw")
        self.assertEqual(context.application_uri, "urn:plc-gw:opcua:client")


class TestApplySecurity(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.security_dir = Path(self._tmp.name)

    async def test_apply_configures_client(self):
        from asyncua.crypto import security_policies

        context = make_context(self.security_dir, policy="Basic256Sha256")
        client = Mock()
        client.set_security = AsyncMock()

        applied = await context.apply(client, ua.MessageSecurityMode.Sign)

        self.assertTrue(applied)
        args, kwargs = client.set_security.call_args
        self.assertIs(args[0], security_policies.SecurityPolicyBasic256Sha256)
        self.assertEqual(kwargs["certificate"], context.certificate_bytes())
        self.assertEqual(kwargs["private_key"], context.private_key_bytes())
        self.assertEqual(kwargs["mode"], ua.MessageSecurityMode.Sign)

    async def test_apply_without_credential(self):
        context = make_context(self.security_dir, policy="")
        client = Mock()
        client.set_security = AsyncMock()

        self.assertFalse(await context.apply(client))
        client.set_security.assert_not_called()


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.security_dir = Path(self._tmp.name) / "pki"

    def _run(self, env):
        from opcua_identity.create_cert import main

        with patch.dict(os.environ, env, clear=True), \
                patch("opcua_identity.create_cert.OpcUaSettings", lambda: OpcUaSettings(_env_file=None)), \
                patch("opcua_identity.keystore.NetworkIdentityDiscoverer.discover", return_value=set()), \
                patch("builtins.print") as self.printed:
            return main()

    def test_creates_identity(self):
        code = self._run({
            "OPCUA_SECURITY_POLICY": "Basic256Sha256",
            "OPCUA_SECURITY_DIR": str(self.security_dir),
            "OPCUA_USER_CREDENTIALS__USER_PASS": "s3cret",
        })
        self.assertEqual(code, 0)
        self.assertTrue((self.security_dir / "opcua-client.p12").exists())

    def test_unconfigured(self):
        self.assertEqual(self._run({}), 0)
        self.assertFalse(self.security_dir.exists())

    def test_degraded_exit_code(self):
        code = self._run({"OPCUA_SECURITY_POLICY": "Basic256", "OPCUA_SECURITY_DIR": str(self.security_dir)})
        self.assertEqual(code, 1)

    def test_unset_key_entry_names_the_reason(self):
        env = {
            "OPCUA_SECURITY_POLICY": "Basic256Sha256",
            "OPCUA_SECURITY_DIR": str(self.security_dir),
            "OPCUA_USER_CREDENTIALS__USER_PASS": "s3cret",
        }
        self.assertEqual(self._run(env), 0)

        code = self._run(dict(env, OPCUA_KEY_STORE__PRIVATE_KEY_ALIAS="other-key"))

        self.assertEqual(code, 1)
        message = self.printed.call_args[0][0]
        self.assertIn("other-key", message)
        self.assertNotIn("None", message)


if __name__ == "__main__":
    unittest.main()
