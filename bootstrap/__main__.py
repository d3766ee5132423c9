"""
State Storage Bootstrap
Creates the S3 bucket and KMS key the main stack uses as its backend.
Run once with a local backend: cd bootstrap && pulumi login --local && pulumi up
"""

import os
import sys

import pulumi

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.state_storage.functions import create_state_storage_resources

config = pulumi.Config()
cluster_name = config.get("cluster_name") or "flask-eks"
aws_region = pulumi.Config("aws").get("region") or "us-east-1"

tags = {
    "Project": "flask-static-app",
    "ManagedBy": "pulumi",
    "Purpose": "state-storage-bootstrap",
}

state = create_state_storage_resources(cluster_name, aws_region, tags)

pulumi.export("bucket_name", state["bucket_name_output"])
pulumi.export("kms_key_arn", state["kms_key_arn"])
pulumi.export("backend_config", state["backend_config"])
pulumi.export("backend_configuration_commands", state["configuration_commands"])
