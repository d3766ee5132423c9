"""
Unit tests for ECR repository bootstrap and registry credentials
"""

import base64
import json
import unittest
from unittest.mock import Mock
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from botocore.exceptions import ClientError

from deploy import ecr as ecr_ops
from deploy.errors import RegistryAuthError

REPO_URI = "123456789012.dkr.ecr.us-east-1.amazonaws.com/flask-static-app"


def client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeEcr:
    """Minimal stateful stand-in for the ECR API"""

    def __init__(self):
        self.repositories = {}
        self.policies = {}
        self.put_calls = 0

    def create_repository(self, repositoryName, **kwargs):
        if repositoryName in self.repositories:
            raise client_error("RepositoryAlreadyExistsException", "CreateRepository")
        self.repositories[repositoryName] = kwargs
        return {"repository": {"repositoryUri": REPO_URI}}

    def describe_repositories(self, repositoryNames):
        return {"repositories": [{"repositoryUri": REPO_URI}]}

    def get_lifecycle_policy(self, repositoryName):
        if repositoryName not in self.policies:
            raise client_error("LifecyclePolicyNotFoundException", "GetLifecyclePolicy")
        return {"lifecyclePolicyText": self.policies[repositoryName]}

    def put_lifecycle_policy(self, repositoryName, lifecyclePolicyText):
        self.put_calls += 1
        self.policies[repositoryName] = lifecyclePolicyText


class TestEnsureRepository(unittest.TestCase):

    def test_first_run_creates_repository_and_policy(self):
        ecr = FakeEcr()

        result = ecr_ops.ensure_repository(ecr, "flask-static-app")

        self.assertTrue(result["created"])
        self.assertEqual(result["lifecycle_policy"], "created")
        self.assertEqual(result["repository_uri"], REPO_URI)
        self.assertEqual(result["registry"], "123456789012.dkr.ecr.us-east-1.amazonaws.com")
        self.assertTrue(ecr.repositories["flask-static-app"]["imageScanningConfiguration"]["scanOnPush"])

    def test_second_run_is_idempotent(self):
        ecr = FakeEcr()

        ecr_ops.ensure_repository(ecr, "flask-static-app")
        result = ecr_ops.ensure_repository(ecr, "flask-static-app")

        self.assertFalse(result["created"])
        self.assertEqual(result["lifecycle_policy"], "unchanged")
        self.assertEqual(len(ecr.repositories), 1)
        self.assertEqual(ecr.put_calls, 1)

    def test_changed_retention_rewrites_policy(self):
        ecr = FakeEcr()

        ecr_ops.ensure_repository(ecr, "flask-static-app", keep_images=10)
        result = ecr_ops.ensure_repository(ecr, "flask-static-app", keep_images=5)

        self.assertEqual(result["lifecycle_policy"], "created")
        policy = json.loads(ecr.policies["flask-static-app"])
        self.assertEqual(policy["rules"][0]["selection"]["countNumber"], 5)

    def test_other_errors_propagate(self):
        ecr = Mock()
        ecr.create_repository.side_effect = client_error("AccessDeniedException")

        with self.assertRaises(ClientError):
            ecr_ops.ensure_repository(ecr, "flask-static-app")


class TestRegistryCredentials(unittest.TestCase):

    def test_token_is_decoded(self):
        ecr = Mock()
        token = base64.b64encode(b"AWS:secret-password").decode()
        ecr.get_authorization_token.return_value = {
            "authorizationData": [{
                "authorizationToken": token,
                "proxyEndpoint": "https://123456789012.dkr.ecr.us-east-1.amazonaws.com",
            }]
        }

        username, password, endpoint = ecr_ops.get_registry_credentials(ecr, "123456789012")

        self.assertEqual(username, "AWS")
        self.assertEqual(password, "secret-password")
        self.assertEqual(endpoint, "123456789012.dkr.ecr.us-east-1.amazonaws.com")
        ecr.get_authorization_token.assert_called_once_with(registryIds=["123456789012"])

    def test_expired_credentials_raise_registry_auth_error(self):
        ecr = Mock()
        ecr.get_authorization_token.side_effect = client_error("ExpiredTokenException")

        with self.assertRaises(RegistryAuthError):
            ecr_ops.get_registry_credentials(ecr, "123456789012")

    def test_account_id_from_sts(self):
        sts = Mock()
        sts.get_caller_identity.return_value = {"Account": "123456789012"}

        self.assertEqual(ecr_ops.get_account_id(sts), "123456789012")

    def test_setup_hints(self):
        hints = ecr_ops.setup_hints(REPO_URI, "us-east-1", "123456789012", "flask-static-app")

        self.assertIn("--password-stdin 123456789012.dkr.ecr.us-east-1.amazonaws.com", hints["docker_login"])
        self.assertEqual(hints["push"], f"docker push {REPO_URI}:latest")


if __name__ == "__main__":
    unittest.main(verbosity=2)
