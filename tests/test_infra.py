"""
Unit tests for the Pulumi Automation API driver
"""

import os
import unittest
from unittest.mock import Mock, patch
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from deploy import infra
from deploy.errors import InfrastructureError
from deploy.settings import Settings


class FakeCommandError(Exception):
    pass


class FakeConcurrentUpdateError(FakeCommandError):
    pass


def make_settings(**overrides):
    values = dict(
        _env_file=None,
        AWS_REGION="us-east-1",
        CLUSTER_NAME="flask-eks",
        NAMESPACE="default",
        PULUMI_STACK="dev",
        PULUMI_BACKEND_URL="s3://flask-eks-pulumi-state-us-east-1?region=us-east-1",
        PULUMI_SECRETS_PROVIDER="awskms://alias/flask-eks-pulumi-secrets",
        INFRA_DIR=".",
    )
    values.update(overrides)
    return Settings(**values)


def output(value):
    return Mock(value=value)


class InfraTestCase(unittest.TestCase):

    def setUp(self):
        patcher = patch('deploy.infra.auto')
        self.auto = patcher.start()
        self.addCleanup(patcher.stop)
        self.auto.CommandError = FakeCommandError
        self.auto.ConcurrentUpdateError = FakeConcurrentUpdateError

        self.stack = Mock()
        self.auto.create_or_select_stack.return_value = self.stack
        self.stack.preview.return_value = Mock(change_summary={"create": 12})
        self.stack.up.return_value = Mock(
            outputs={"cluster_name": output("flask-eks"), "cluster_endpoint": output("https://eks.example")},
            summary=Mock(resource_changes={"create": 12}),
        )


class TestSelectStack(InfraTestCase):

    def test_backend_and_config(self):
        infra.select_stack(make_settings())

        options = self.auto.LocalWorkspaceOptions.call_args.kwargs
        self.assertEqual(options["env_vars"]["PULUMI_BACKEND_URL"],
                         "s3://flask-eks-pulumi-state-us-east-1?region=us-east-1")
        self.assertEqual(options["secrets_provider"], "awskms://alias/flask-eks-pulumi-secrets")

        kwargs = self.auto.create_or_select_stack.call_args.kwargs
        self.assertEqual(kwargs["stack_name"], "dev")
        self.assertEqual(kwargs["work_dir"], os.path.abspath("."))

        keys = [c.args[0] for c in self.stack.set_config.call_args_list]
        self.assertEqual(keys, ["aws:region", "cluster_name", "app_namespace"])
        self.auto.ConfigValue.assert_any_call(value="us-east-1")

    def test_select_failure(self):
        self.auto.create_or_select_stack.side_effect = FakeCommandError("no credentials")

        with self.assertRaises(InfrastructureError):
            infra.select_stack(make_settings())


class TestApplyInfrastructure(InfraTestCase):

    def test_preview_then_up(self):
        result = infra.apply_infrastructure(make_settings())

        self.assertEqual(result, {
            "cluster_name": "flask-eks",
            "cluster_endpoint": "https://eks.example",
            "change_summary": {"create": 12},
        })
        self.stack.preview.assert_called_once()
        self.stack.up.assert_called_once()

    def test_preview_only(self):
        result = infra.apply_infrastructure(make_settings(), preview_only=True)

        self.assertEqual(result["change_summary"], {"create": 12})
        self.stack.up.assert_not_called()

    def test_locked_state(self):
        self.stack.up.side_effect = FakeConcurrentUpdateError("conflict")

        with self.assertRaises(InfrastructureError) as ctx:
            infra.apply_infrastructure(make_settings())

        self.assertIn("locked", str(ctx.exception))

    def test_failed_update(self):
        self.stack.preview.side_effect = FakeCommandError("AccessDenied")

        with self.assertRaises(InfrastructureError):
            infra.apply_infrastructure(make_settings())

        self.stack.up.assert_not_called()

    def test_missing_outputs(self):
        self.stack.up.return_value = Mock(outputs={"cluster_name": output("flask-eks")},
                                          summary=Mock(resource_changes={}))

        with self.assertRaises(InfrastructureError) as ctx:
            infra.apply_infrastructure(make_settings())

        self.assertIn("cluster_endpoint", str(ctx.exception))

    def test_read_outputs(self):
        self.stack.outputs.return_value = {"cluster_name": output("flask-eks"),
                                           "cluster_endpoint": output("https://eks.example"),
                                           "vpc_id": output("vpc-1")}

        outputs = infra.read_outputs(make_settings())

        self.assertEqual(outputs["vpc_id"], "vpc-1")
        self.stack.up.assert_not_called()


if __name__ == "__main__":
    unittest.main(verbosity=2)
