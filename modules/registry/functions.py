"""
Registry Module Functions
ECR repository holding architecture-tagged images and their manifest lists
"""

import json
import pulumi_aws as aws
from typing import Dict

# Images lose their tag when a rebuilt commit pushes the same tag again
UNTAGGED_EXPIRY_DAYS = 14


def lifecycle_policy(untagged_expiry_days: int = UNTAGGED_EXPIRY_DAYS) -> str:
    """ECR lifecycle policy expiring untagged images"""
    return json.dumps({
        "rules": [
            {
                "rulePriority": 1,
                "description": f"Expire untagged images after {untagged_expiry_days} days",
                "selection": {
                    "tagStatus": "untagged",
                    "countType": "sinceImagePushed",
                    "countUnit": "days",
                    "countNumber": untagged_expiry_days
                },
                "action": {
                    "type": "expire"
                }
            }
        ]
    })


def create_image_repository(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create ECR repository for the application images

    Args:
        name: Repository name
        tags: Additional tags

    Returns:
        Dict with repository resource and outputs
    """
    tags = tags or {}

    repository = aws.ecr.Repository(
        f"{name}-repo",
        name=name,
        image_tag_mutability="MUTABLE",
        image_scanning_configuration=aws.ecr.RepositoryImageScanningConfigurationArgs(
            scan_on_push=True
        ),
        force_delete=True,
        tags={
            **tags,
            "Name": f"{name}-repo",
            "Module": "registry"
        }
    )

    aws.ecr.LifecyclePolicy(
        f"{name}-repo-lifecycle",
        repository=repository.name,
        policy=lifecycle_policy()
    )

    return {
        "repository": repository,
        "repository_url": repository.repository_url,
        "repository_arn": repository.arn,
        "repository_name": repository.name
    }


def create_registry_resources(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the image registry shared by every environment

    Args:
        name: Project name
        tags: Additional tags

    Returns:
        Dict with registry outputs
    """
    repository_result = create_image_repository(name, tags)

    return {
        "repository_url": repository_result["repository_url"],
        "repository_arn": repository_result["repository_arn"],
        "repository_name": repository_result["repository_name"],
        "_repository": repository_result["repository"]
    }
