"""
VPC Module Functions
Network layer for the EKS cluster: VPC, public subnets, routing and security groups
"""

import pulumi
import pulumi_aws as aws
from typing import Any, Dict, List


def _tagged(tags: Dict[str, str], name: str, **extra: str) -> Dict[str, str]:
    return {**tags, "Name": name, "Module": "vpc", **extra}


def create_vpc(name: str, cidr: str, enable_dns_hostnames: bool = True,
               enable_dns_support: bool = True, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the VPC that hosts the cluster

    Args:
        name: Cluster name, used as resource prefix
        cidr: VPC CIDR block
        enable_dns_hostnames: Enable DNS hostnames (required by EKS)
        enable_dns_support: Enable the Amazon-provided DNS server
        tags: Additional tags

    Returns:
        Dict with the vpc resource and its id/cidr outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=enable_dns_hostnames,
        enable_dns_support=enable_dns_support,
        tags=_tagged(tags, f"{name}-vpc", **{f"kubernetes.io/cluster/{name}": "shared"}),
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block,
    }


def create_public_subnets(name: str, vpc_id: pulumi.Output[str], subnet_cidrs: List[str],
                          availability_zones: List[str], map_public_ip_on_launch: bool = True,
                          tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one public subnet per CIDR, spread over the available zones.

    Subnets carry the ``kubernetes.io/role/elb`` tag so the load balancer
    controller can place the internet-facing ALB in them.
    """
    tags = tags or {}

    subnets = []
    for index, cidr in enumerate(subnet_cidrs):
        zone = availability_zones[index % len(availability_zones)]
        subnet = aws.ec2.Subnet(
            f"{name}-public-{index + 1}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=zone,
            map_public_ip_on_launch=map_public_ip_on_launch,
            tags=_tagged(
                tags,
                f"{name}-public-{index + 1}",
                **{
                    f"kubernetes.io/cluster/{name}": "shared",
                    "kubernetes.io/role/elb": "1",
                    "Type": "public",
                },
            ),
        )
        subnets.append(subnet)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets],
        "availability_zones": availability_zones,
    }


def create_public_routing(name: str, vpc_id: pulumi.Output[str],
                          subnet_ids: List[pulumi.Output[str]],
                          tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the internet gateway and a route table sending 0.0.0.0/0 through it

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        subnet_ids: Subnets to associate with the public route table
        tags: Additional tags

    Returns:
        Dict with gateway, route table and association resources
    """
    tags = tags or {}

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags=_tagged(tags, f"{name}-igw"),
    )

    route_table = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        routes=[aws.ec2.RouteTableRouteArgs(cidr_block="0.0.0.0/0", gateway_id=igw.id)],
        tags=_tagged(tags, f"{name}-public-rt"),
    )

    associations = [
        aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{index + 1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id,
        )
        for index, subnet_id in enumerate(subnet_ids)
    ]

    return {
        "igw": igw,
        "route_table": route_table,
        "associations": associations,
        "route_table_id": route_table.id,
    }


def create_security_groups(name: str, vpc_id: pulumi.Output[str],
                           tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the cluster and node security groups and the rules between them

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        tags: Additional tags

    Returns:
        Dict with both security groups and their ids
    """
    tags = tags or {}

    cluster_sg = aws.ec2.SecurityGroup(
        f"{name}-cluster-sg",
        name_prefix=f"{name}-cluster-",
        vpc_id=vpc_id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            from_port=0, to_port=0, protocol="-1", cidr_blocks=["0.0.0.0/0"])],
        tags=_tagged(tags, f"{name}-cluster-sg"),
    )

    node_sg = aws.ec2.SecurityGroup(
        f"{name}-node-sg",
        name_prefix=f"{name}-node-",
        vpc_id=vpc_id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            from_port=0, to_port=0, protocol="-1", cidr_blocks=["0.0.0.0/0"])],
        tags=_tagged(tags, f"{name}-node-sg", **{f"kubernetes.io/cluster/{name}": "owned"}),
    )

    # node <-> node, control plane -> kubelet/pods, nodes -> API server
    rules = [
        aws.ec2.SecurityGroupRule(
            f"{name}-node-ingress-self",
            type="ingress", from_port=0, to_port=65535, protocol="-1",
            self=True, security_group_id=node_sg.id),
        aws.ec2.SecurityGroupRule(
            f"{name}-node-ingress-cluster",
            type="ingress", from_port=1025, to_port=65535, protocol="tcp",
            source_security_group_id=cluster_sg.id, security_group_id=node_sg.id),
        aws.ec2.SecurityGroupRule(
            f"{name}-cluster-ingress-node",
            type="ingress", from_port=443, to_port=443, protocol="tcp",
            source_security_group_id=node_sg.id, security_group_id=cluster_sg.id),
    ]

    return {
        "cluster_sg": cluster_sg,
        "node_sg": node_sg,
        "rules": rules,
        "cluster_security_group_id": cluster_sg.id,
        "node_group_security_group_id": node_sg.id,
    }


def create_vpc_resources(cluster_name: str, vpc_cidr: str, public_subnet_cidrs: List[str],
                         enable_dns_hostnames: bool = True, enable_dns_support: bool = True,
                         map_public_ip_on_launch: bool = True,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete VPC infrastructure for EKS

    Args:
        cluster_name: EKS cluster name
        vpc_cidr: VPC CIDR block
        public_subnet_cidrs: List of public subnet CIDR blocks
        enable_dns_hostnames: Enable DNS hostnames in VPC
        enable_dns_support: Enable DNS support in VPC
        map_public_ip_on_launch: Auto-assign public IPs to instances
        tags: Additional tags for all resources

    Returns:
        Dict with all VPC outputs; underscored keys keep resource references
    """
    tags = tags or {}

    azs = aws.get_availability_zones(state="available")

    vpc_result = create_vpc(cluster_name, vpc_cidr, enable_dns_hostnames, enable_dns_support, tags)
    subnets_result = create_public_subnets(
        cluster_name,
        vpc_result["vpc_id"],
        public_subnet_cidrs,
        azs.names,
        map_public_ip_on_launch,
        tags,
    )
    routing_result = create_public_routing(
        cluster_name, vpc_result["vpc_id"], subnets_result["subnet_ids"], tags)
    sg_result = create_security_groups(cluster_name, vpc_result["vpc_id"], tags)

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": subnets_result["subnet_ids"],
        "availability_zones": subnets_result["availability_zones"],
        "cluster_security_group_id": sg_result["cluster_security_group_id"],
        "node_group_security_group_id": sg_result["node_group_security_group_id"],
        "_vpc": vpc_result["vpc"],
        "_subnets": subnets_result["subnets"],
        "_igw": routing_result["igw"],
        "_route_table": routing_result["route_table"],
        "_cluster_sg": sg_result["cluster_sg"],
        "_node_sg": sg_result["node_sg"],
    }
