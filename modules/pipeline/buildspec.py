"""
CodeBuild buildspecs for the release pipeline

Image tags are derived from the commit that triggered the pipeline:
<repo>:<short-sha>-<arch> for each architecture build and <repo>:<short-sha>
for the manifest list that references them. Inside CodeBuild the same tags
are expressed with shell parameter expansion over the resolved source
version, so the helpers here accept either concrete values or shell
expressions.
"""

import json
import re
from typing import Dict, List, Optional, Sequence

SHORT_SHA_LENGTH = 8
ARCHITECTURES = ("x86", "arm64")

ROLLOUT_TIMEOUT = "5m"
WORKLOAD_NAME = "spring-petclinic"
DEPLOY_DIR = "deploy"
PATCH_FILE = "image.patch.yaml"

REPO_EXPR = "${IMAGE_REPO_URI}"
SHORT_SHA_EXPR = "${CODEBUILD_RESOLVED_SOURCE_VERSION:0:%d}" % SHORT_SHA_LENGTH

# JSON-patch paths into the workload's Deployment
IMAGE_PATH = "/spec/template/spec/containers/0/image"
DATABASE_URL_PATH = "/spec/template/spec/containers/0/env/0/value"

_COMMIT_PATTERN = re.compile(r"^[0-9a-fA-F]+$")


def short_sha(commit: str) -> str:
    """
    Abbreviate a commit identifier to the tag prefix

    Raises:
        ValueError: if commit is not hex or shorter than SHORT_SHA_LENGTH
    """
    if not commit or not _COMMIT_PATTERN.match(commit):
        raise ValueError(f"Not a commit identifier: {commit!r}")
    if len(commit) < SHORT_SHA_LENGTH:
        raise ValueError(f"Commit identifier shorter than {SHORT_SHA_LENGTH} characters: {commit!r}")
    return commit[:SHORT_SHA_LENGTH].lower()


def image_tag(repository: str, sha: str, arch: Optional[str] = None) -> str:
    """Architecture image tag, or the manifest-list tag when arch is None"""
    if arch is None:
        return f"{repository}:{sha}"
    return f"{repository}:{sha}-{arch}"


def registry_login_command() -> str:
    return (
        "aws ecr get-login-password --region $AWS_DEFAULT_REGION"
        " | docker login --username AWS --password-stdin"
        " $AWS_ACCOUNT_ID.dkr.ecr.$AWS_DEFAULT_REGION.amazonaws.com"
    )


def _spec(phases: Dict[str, Dict]) -> Dict:
    return {
        "version": "0.2",
        "env": {"shell": "bash"},
        "phases": phases,
    }


def arch_build_spec(arch: str) -> Dict:
    """Build and push the image for one architecture"""
    tag = image_tag(REPO_EXPR, SHORT_SHA_EXPR, arch)
    return _spec({
        "pre_build": {"commands": [registry_login_command()]},
        "build": {"commands": [f"docker build -t {tag} ."]},
        "post_build": {"commands": [f"docker push {tag}"]},
    })


def manifest_spec(architectures: Sequence[str] = ARCHITECTURES) -> Dict:
    """
    Assemble and push the multi-architecture manifest list

    The build phase aborts on its first failing command, so a manifest is
    never pushed when one of the architecture images is missing.
    """
    base = image_tag(REPO_EXPR, SHORT_SHA_EXPR)
    arch_tags = " ".join(f"${{IMAGE_BASE}}-{arch}" for arch in architectures)
    return _spec({
        "pre_build": {"commands": [registry_login_command()]},
        "build": {
            "on-failure": "ABORT",
            "commands": [
                f"IMAGE_BASE={base}",
                f"docker manifest create $IMAGE_BASE {arch_tags}",
            ],
        },
        "post_build": {"commands": [f"docker manifest push {base}"]},
    })


def image_patch_operations(image: str, database_url: str) -> List[Dict[str, str]]:
    """Replace operations pointing the workload at a new image and database"""
    return [
        {"op": "replace", "path": IMAGE_PATH, "value": image},
        {"op": "replace", "path": DATABASE_URL_PATH, "value": database_url},
    ]


def patch_document(operations: List[Dict[str, str]]) -> List[str]:
    """YAML lines of a JSON-patch document"""
    lines = []
    for operation in operations:
        lines.append(f"- op: {operation['op']}")
        lines.append(f"  path: {operation['path']}")
        lines.append(f"  value: {operation['value']}")
    return lines


def patch_commands(operations: List[Dict[str, str]], patch_file: str) -> List[str]:
    """Shell commands writing the patch document line by line"""
    return [f'echo "{line}" >> {patch_file}' for line in patch_document(operations)]


def kubectl_url(kubectl_version: str, arch: str = "arm64") -> str:
    return f"https://dl.k8s.io/release/{kubectl_version}/bin/linux/{arch}/kubectl"


def deploy_spec(kubectl_version: str,
                workload: str = WORKLOAD_NAME,
                deploy_dir: str = DEPLOY_DIR,
                timeout: str = ROLLOUT_TIMEOUT) -> Dict:
    """
    Patch, apply and wait for the workload on the target cluster

    Cluster credentials come from assuming $CLUSTER_ROLE_ARN. A rollout
    that is not healthy within timeout fails the job; nothing is rolled back.
    """
    operations = image_patch_operations(image_tag(REPO_EXPR, SHORT_SHA_EXPR), "${MYSQL_URL}")
    return _spec({
        "install": {
            "commands": [
                "export PATH=/usr/local/bin:$PATH",
                "curl -sS https://awscli.amazonaws.com/awscli-exe-linux-aarch64.zip -o /tmp/awscliv2.zip",
                "(cd /tmp && unzip -q awscliv2.zip && ./aws/install --update)",
                f"curl -sSL -o /tmp/kubectl {kubectl_url(kubectl_version)}",
                "chmod +x /tmp/kubectl",
                "aws eks update-kubeconfig --name $CLUSTER_NAME --region $AWS_DEFAULT_REGION --role-arn $CLUSTER_ROLE_ARN",
            ]
        },
        "pre_build": {"commands": patch_commands(operations, f"{deploy_dir}/{PATCH_FILE}")},
        "build": {"commands": [f"/tmp/kubectl apply -k {deploy_dir}"]},
        "post_build": {
            "commands": [f"/tmp/kubectl rollout status deployment/{workload} --timeout={timeout}"]
        },
    })


def render(spec: Dict) -> str:
    """Serialize a buildspec; CodeBuild accepts JSON as YAML"""
    return json.dumps(spec, indent=2)
