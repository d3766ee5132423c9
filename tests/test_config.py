"""
Unit tests for the infrastructure program configuration
"""

import unittest
from unittest.mock import patch
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_config


class TestConfig(unittest.TestCase):

    def _config(self, values=None, bools=None):
        values = values or {}
        bools = bools or {}
        with patch('config.pulumi') as mock_pulumi:
            cfg = mock_pulumi.Config.return_value
            cfg.get.side_effect = values.get
            cfg.get_int.side_effect = values.get
            cfg.get_object.side_effect = values.get
            cfg.get_bool.side_effect = bools.get
            mock_pulumi.get_stack.return_value = "dev"
            config = get_config()
            tags = config.common_tags
        return config, tags

    def test_defaults(self):
        config, tags = self._config()

        self.assertEqual(config.cluster_name, "flask-eks")
        self.assertEqual(config.aws_region, "us-east-1")
        self.assertEqual(config.app_namespace, "default")
        self.assertEqual(config.capacity_type, "ON_DEMAND")
        self.assertEqual(tags["Environment"], "dev")
        self.assertEqual(tags["Project"], "flask-static-app")

    def test_addons_can_be_disabled(self):
        config, _ = self._config(bools={"enable_metrics_server": False})

        self.assertFalse(config.enable_metrics_server)
        self.assertTrue(config.enable_load_balancer_controller)

    def test_spot_instances(self):
        config, _ = self._config(bools={"enable_spot_instances": True})

        self.assertEqual(config.capacity_type, "SPOT")
        self.assertIn("t3a.medium", config.optimized_instance_types)

    def test_additional_tags_are_merged(self):
        _, tags = self._config(values={"tags": {"Owner": "platform"}})

        self.assertEqual(tags["Owner"], "platform")
        self.assertEqual(tags["ManagedBy"], "pulumi")


if __name__ == "__main__":
    unittest.main(verbosity=2)
