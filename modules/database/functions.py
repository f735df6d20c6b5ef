"""
Database Module Functions
MySQL instance in the private subnets, reachable only from the EKS cluster
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List


def database_url(address: str, db_name: str) -> str:
    """JDBC connection string handed to the application"""
    return f"jdbc:mysql://{address}/{db_name}"


def create_database_key(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create KMS key encrypting the generated database credentials

    Args:
        name: Resource name prefix
        tags: Additional tags

    Returns:
        Dict with key resource and ARN
    """
    tags = tags or {}

    kms_key = aws.kms.Key(
        f"{name}-rds-kms-key",
        description=f"RDS credentials encryption key for {name}",
        enable_key_rotation=True,
        tags={
            **tags,
            "Name": f"{name}-rds-kms-key",
            "Module": "database"
        }
    )

    aws.kms.Alias(
        f"{name}-rds-kms-alias",
        name=f"alias/{name}-rds",
        target_key_id=kms_key.key_id
    )

    return {
        "kms_key": kms_key,
        "kms_key_arn": kms_key.arn
    }


def create_database_security_group(name: str, vpc_id: pulumi.Output[str],
                                   cluster_security_group_id: pulumi.Output[str],
                                   port: int = 3306,
                                   tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create security group admitting only the cluster security group

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        cluster_security_group_id: Security group of the EKS cluster
        port: Database port
        tags: Additional tags

    Returns:
        Dict with security group resources and outputs
    """
    tags = tags or {}

    security_group = aws.ec2.SecurityGroup(
        f"{name}-db-sg",
        vpc_id=vpc_id,
        description=f"MySQL access for the {name} cluster",
        tags={
            **tags,
            "Name": f"{name}-db-sg",
            "Module": "database"
        }
    )

    # The only ingress rule; no CIDR-based access
    cluster_ingress = aws.ec2.SecurityGroupRule(
        f"{name}-db-ingress-cluster",
        type="ingress",
        from_port=port,
        to_port=port,
        protocol="tcp",
        source_security_group_id=cluster_security_group_id,
        security_group_id=security_group.id
    )

    return {
        "security_group": security_group,
        "cluster_ingress": cluster_ingress,
        "security_group_id": security_group.id
    }


def create_database_instance(name: str, subnet_ids: List[pulumi.Output[str]],
                             security_group_id: pulumi.Output[str],
                             kms_key_arn: pulumi.Output[str],
                             engine_version: str = "8.0",
                             instance_class: str = "db.t3.micro",
                             db_name: str = "petclinic",
                             username: str = "admin",
                             port: int = 3306,
                             allocated_storage: int = 20,
                             tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create MySQL instance with service-generated credentials

    RDS generates the master password and keeps the credential pair in
    Secrets Manager, encrypted with kms_key_arn.

    Args:
        name: Resource name prefix
        subnet_ids: Private subnet IDs
        security_group_id: Database security group
        kms_key_arn: Key encrypting the credential secret
        engine_version: MySQL version
        instance_class: Instance size class
        db_name: Initial schema
        username: Master username
        port: Database port
        allocated_storage: Storage in GB
        tags: Additional tags

    Returns:
        Dict with instance resource and outputs
    """
    tags = tags or {}

    subnet_group = aws.rds.SubnetGroup(
        f"{name}-db-subnet-group",
        subnet_ids=subnet_ids,
        tags={
            **tags,
            "Name": f"{name}-db-subnet-group",
            "Module": "database"
        }
    )

    instance = aws.rds.Instance(
        f"{name}-db",
        engine="mysql",
        engine_version=engine_version,
        instance_class=instance_class,
        allocated_storage=allocated_storage,
        db_name=db_name,
        username=username,
        port=port,
        manage_master_user_password=True,
        master_user_secret_kms_key_id=kms_key_arn,
        db_subnet_group_name=subnet_group.name,
        vpc_security_group_ids=[security_group_id],
        publicly_accessible=False,
        storage_encrypted=True,
        backup_retention_period=7,
        skip_final_snapshot=True,
        apply_immediately=True,
        tags={
            **tags,
            "Name": f"{name}-db",
            "Module": "database"
        }
    )

    secret_arn = instance.master_user_secrets[0].secret_arn

    return {
        "subnet_group": subnet_group,
        "instance": instance,
        "address": instance.address,
        "endpoint": pulumi.Output.concat(instance.address, ":", instance.port.apply(str)),
        "secret_arn": secret_arn,
        "secret_name": aws.secretsmanager.get_secret_output(arn=secret_arn).name
    }


def create_database_resources(name: str, vpc_id: pulumi.Output[str],
                              private_subnet_ids: List[pulumi.Output[str]],
                              cluster_security_group_id: pulumi.Output[str],
                              engine_version: str = "8.0",
                              instance_class: str = "db.t3.micro",
                              db_name: str = "petclinic",
                              username: str = "admin",
                              port: int = 3306,
                              allocated_storage: int = 20,
                              tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the database for one environment

    Args:
        name: Cluster name, used as resource prefix
        vpc_id: VPC ID
        private_subnet_ids: Private subnet IDs
        cluster_security_group_id: Security group allowed to connect
        engine_version: MySQL version
        instance_class: Instance size class
        db_name: Initial schema
        username: Master username
        port: Database port
        allocated_storage: Storage in GB
        tags: Additional tags

    Returns:
        Dict with database outputs
    """
    tags = tags or {}

    key_result = create_database_key(name, tags)
    sg_result = create_database_security_group(name, vpc_id, cluster_security_group_id, port, tags)

    instance_result = create_database_instance(
        name,
        private_subnet_ids,
        sg_result["security_group_id"],
        key_result["kms_key_arn"],
        engine_version=engine_version,
        instance_class=instance_class,
        db_name=db_name,
        username=username,
        port=port,
        allocated_storage=allocated_storage,
        tags=tags
    )

    return {
        "endpoint": instance_result["endpoint"],
        "address": instance_result["address"],
        "secret_arn": instance_result["secret_arn"],
        "secret_name": instance_result["secret_name"],
        "url": instance_result["address"].apply(lambda address: database_url(address, db_name)),
        "security_group_id": sg_result["security_group_id"],
        # Keep references to resources for dependencies
        "_kms_key": key_result["kms_key"],
        "_security_group": sg_result["security_group"],
        "_instance": instance_result["instance"]
    }
